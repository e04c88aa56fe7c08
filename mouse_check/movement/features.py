"""Kinematic feature extraction for pointer traces.

A trace is an ordered list of {x, y, t} samples (t in milliseconds). The
extractor derives every series the classifier needs in a single pass so
that signals never recompute a derivative on their own.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class DerivedSeries:
    """Read-only kinematic series derived from one trace.

    Attributes:
        points: N x 3 array of [x, y, t] in capture order.
        steps: (N-1) x 2 displacement between consecutive samples.
        gaps: (N-1) raw time gaps, may be zero or negative.
        speeds: distance / dt for steps with dt > 0 and distance > 0.
        velocities: M x 3 array of [vx, vy, t] for steps with dt > 0.
        accelerations: K x 3 array of [ax, ay, t] from consecutive velocities.
        jerks: magnitudes of the derivative of the accelerations.
        curvatures: signed turning angle between consecutive steps.
        residuals: (N-4) x 2 offset of each sample from the mean of its two
            predecessors and two successors.
    """

    points: np.ndarray
    steps: np.ndarray
    gaps: np.ndarray
    speeds: np.ndarray
    velocities: np.ndarray
    accelerations: np.ndarray
    jerks: np.ndarray
    curvatures: np.ndarray
    residuals: np.ndarray

    @property
    def point_count(self) -> int:
        return len(self.points)

    @property
    def duration(self) -> float:
        """Span between the first and last sample in ms."""
        if len(self.points) == 0:
            return 0.0
        return float(self.points[-1, 2] - self.points[0, 2])

    @property
    def step_lengths(self) -> np.ndarray:
        return np.hypot(self.steps[:, 0], self.steps[:, 1])

    @property
    def speed_magnitudes(self) -> np.ndarray:
        return np.hypot(self.velocities[:, 0], self.velocities[:, 1])


def points_to_array(points: Sequence[Mapping[str, Any]]) -> np.ndarray:
    """Convert a list of {x, y, t} mappings to an N x 3 float array.

    Order is preserved; samples are never re-sorted by timestamp.
    """
    if not points:
        return np.empty((0, 3), dtype=float)
    return np.array([[float(p["x"]), float(p["y"]), float(p["t"])] for p in points], dtype=float)


def _derivative(series: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Differentiate a 2-column series, skipping pairs with dt <= 0."""
    if len(series) < 2:
        return np.empty((0, 2)), np.empty(0)
    dt = np.diff(times)
    mask = dt > 0
    rates = np.diff(series, axis=0)[mask] / dt[mask, None]
    return rates, times[1:][mask]


def _turning_angles(steps: np.ndarray) -> np.ndarray:
    if len(steps) < 2:
        return np.empty(0)
    v1, v2 = steps[:-1], steps[1:]
    cross = v1[:, 0] * v2[:, 1] - v1[:, 1] * v2[:, 0]
    dot = v1[:, 0] * v2[:, 0] + v1[:, 1] * v2[:, 1]
    return np.arctan2(cross, dot)


def _smoothing_residuals(xy: np.ndarray) -> np.ndarray:
    if len(xy) < 5:
        return np.empty((0, 2))
    expected = (xy[:-4] + xy[1:-3] + xy[3:-1] + xy[4:]) / 4.0
    return xy[2:-2] - expected


def extract_series(points: Sequence[Mapping[str, Any]]) -> DerivedSeries:
    """Derive velocity, acceleration, jerk, curvature and residual series.

    Args:
        points: Ordered pointer samples, each with x, y and t (ms).

    Returns:
        DerivedSeries whose arrays are all marked read-only.
    """
    arr = points_to_array(points)
    xy = arr[:, :2]
    t = arr[:, 2]

    steps = np.diff(xy, axis=0) if len(arr) > 1 else np.empty((0, 2))
    gaps = np.diff(t) if len(arr) > 1 else np.empty(0)

    dist = np.hypot(steps[:, 0], steps[:, 1])
    speed_mask = (gaps > 0) & (dist > 0)
    speeds = dist[speed_mask] / gaps[speed_mask]

    vel, vel_t = _derivative(xy, t)
    acc, acc_t = _derivative(vel, vel_t)
    jerk_vec, _ = _derivative(acc, acc_t)
    jerks = np.hypot(jerk_vec[:, 0], jerk_vec[:, 1]) if len(jerk_vec) else np.empty(0)

    series = DerivedSeries(
        points=_frozen(arr),
        steps=_frozen(steps),
        gaps=_frozen(gaps),
        speeds=_frozen(speeds),
        velocities=_frozen(np.column_stack([vel, vel_t]) if len(vel) else np.empty((0, 3))),
        accelerations=_frozen(np.column_stack([acc, acc_t]) if len(acc) else np.empty((0, 3))),
        jerks=_frozen(jerks),
        curvatures=_frozen(_turning_angles(steps)),
        residuals=_frozen(_smoothing_residuals(xy)),
    )
    logger.debug(
        "Extracted series: points=%d speeds=%d velocities=%d accelerations=%d jerks=%d",
        len(arr), len(speeds), len(vel), len(acc), len(jerks),
    )
    return series


def canonical_points(points: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Project samples onto {x, y, t} in that key order, dropping extra keys."""
    return [{"x": p["x"], "y": p["y"], "t": p["t"]} for p in points]
