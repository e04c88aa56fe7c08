"""Heuristic signals computed over a derived pointer trace.

Six primary checks vote on whether a trace looks human. The last of them,
``notRobotic``, is itself a composite of a straightness test, an
anti-smoothing suite of eighteen secondary signals and a timing regularity
test. Each signal is weak on its own; passing all of them at once is what
makes a scripted trace expensive to produce.

All functions here are pure: they read a DerivedSeries and a
DetectionConfig and return plain Python values.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..config.constants import DetectionConfig
from .features import DerivedSeries

logger = logging.getLogger(__name__)


class SignalVector(BaseModel):
    """Boolean outcome of every check, six primary plus target tracking."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    speed: bool = False
    curves: bool = False
    jitter: bool = False
    timing: bool = False
    continuous: bool = False
    not_robotic: bool = False
    target_tracking: bool = False

    def primary(self) -> List[bool]:
        return [self.speed, self.curves, self.jitter, self.timing, self.continuous, self.not_robotic]


@dataclass(frozen=True)
class SignalEvaluation:
    checks: SignalVector
    metrics: Dict[str, Any] = field(default_factory=dict)


def _ratio(numerator: float, denominator: float) -> float:
    return float(numerator) / denominator if denominator > 0 else 0.0


def _wrap_angle(diff: float) -> float:
    diff = abs(diff)
    if diff > math.pi:
        diff = 2 * math.pi - diff
    return diff


# ---------------------------------------------------------------------------
# Primary checks
# ---------------------------------------------------------------------------

def check_speed(series: DerivedSeries, config: DetectionConfig) -> Tuple[bool, Dict[str, float]]:
    """Humans accelerate and decelerate; constant speed is a script.

    Compares the mean speed of the first and last thirds of the trace and
    the overall max/min spread.
    """
    speeds = series.speeds
    passed = False
    if len(speeds) > config.min_speed_samples:
        third = len(speeds) // 3
        mean_first = float(np.mean(speeds[:third]))
        mean_last = float(np.mean(speeds[-third:]))
        has_variation = abs(mean_first - mean_last) > config.speed_thirds_delta
        has_spread = float(speeds.max()) > float(speeds.min()) * config.speed_range_factor
        passed = has_variation or has_spread
    variation = float(speeds.max() / speeds.min()) if len(speeds) else 0.0
    return passed, {"speedVariation": variation}


def smooth_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of turning angles below the smooth-angle cut-off.

    Only angle pairs whose two steps are both longer than the minimum
    vector length are counted.
    """
    lengths = series.step_lengths
    if len(lengths) < 2:
        return 0.0
    mask = (lengths[:-1] > config.min_vector_length) & (lengths[1:] > config.min_vector_length)
    angles = np.abs(series.curvatures)[mask]
    smooth = int(np.count_nonzero(angles < config.smooth_angle))
    return smooth / max(1, len(angles))


def check_curves(series: DerivedSeries, config: DetectionConfig) -> Tuple[bool, Dict[str, float]]:
    ratio = smooth_ratio(series, config)
    passed = config.smooth_ratio_min < ratio < config.smooth_ratio_max
    return passed, {"smoothRatio": ratio}


def sign_reversal_ratio(series: DerivedSeries) -> float:
    """Per-point count of sign flips in the step dx and dy."""
    steps = series.steps
    if len(steps) == 0:
        return 0.0
    reversals = 0
    for axis in (0, 1):
        delta = steps[:, axis]
        prev = np.concatenate([[0.0], delta[:-1]])
        flips = ((prev > 0) & (delta < 0)) | ((prev < 0) & (delta > 0))
        reversals += int(np.count_nonzero(flips))
    return reversals / series.point_count


def check_jitter(series: DerivedSeries, config: DetectionConfig) -> Tuple[bool, Dict[str, float]]:
    ratio = sign_reversal_ratio(series)
    return ratio < config.max_reversal_ratio, {"reversalRatio": ratio}


def check_timing(series: DerivedSeries, config: DetectionConfig) -> Tuple[bool, Dict[str, float]]:
    """Natural pauses are allowed, but not long or frequent ones."""
    n = series.point_count
    gaps = series.gaps
    duration = series.duration
    pause_count = int(np.count_nonzero(gaps > config.pause_gap_ms))
    long_pause_count = int(np.count_nonzero(gaps > config.long_pause_gap_ms))
    pause_ratio = _ratio(pause_count, n)
    passed = (
        duration > config.min_duration_ms
        and pause_ratio < config.max_pause_ratio
        and long_pause_count < n * config.max_long_pause_ratio
    )
    return passed, {"pauseRatio": pause_ratio, "longPauseCount": long_pause_count}


def points_per_second(series: DerivedSeries) -> float:
    duration = series.duration
    if duration <= 0:
        return 0.0
    return series.point_count / (duration / 1000.0)


def check_continuous(series: DerivedSeries, config: DetectionConfig) -> Tuple[bool, Dict[str, float]]:
    """Real pointers emit a steady stream of move events."""
    gaps = series.gaps
    continuous_ratio = _ratio(np.count_nonzero(gaps < config.small_gap_ms), len(gaps))
    pps = points_per_second(series)
    passed = continuous_ratio > config.min_continuous_ratio and pps > config.min_points_per_second
    return passed, {"continuousRatio": continuous_ratio, "pointsPerSecond": pps}


# ---------------------------------------------------------------------------
# notRobotic: straightness
# ---------------------------------------------------------------------------

def straight_window_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Fraction of sliding windows that lie on an almost perfect line.

    Each window is compared with the chord between its endpoints; windows
    with a chord shorter than the minimum length are not evaluated.
    """
    pts = series.points
    window = config.straight_window
    too_straight = 0
    evaluated = 0
    for start in range(0, len(pts) - window, config.straight_stride):
        segment = pts[start:start + window]
        x1, y1 = segment[0, 0], segment[0, 1]
        x2, y2 = segment[-1, 0], segment[-1, 1]
        line_len = math.hypot(x2 - x1, y2 - y1)
        if line_len < config.straight_min_length:
            continue

        interior = segment[1:-1]
        deviation = np.abs(
            (y2 - y1) * interior[:, 0] - (x2 - x1) * interior[:, 1] + x2 * y1 - y2 * x1
        ) / line_len
        avg_deviation = float(np.mean(deviation))
        evaluated += 1
        if avg_deviation / line_len < config.straight_deviation_ratio and avg_deviation < config.straight_max_deviation:
            too_straight += 1
    return _ratio(too_straight, evaluated)


# ---------------------------------------------------------------------------
# notRobotic: anti-smoothing metrics
# ---------------------------------------------------------------------------

def jerk_spike_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of jerk samples more than jerk_spike_sigma deviations from the mean."""
    jerks = series.jerks
    spikes = 0
    if len(jerks) > 10:
        mean = float(np.mean(jerks))
        std = float(np.std(jerks))
        spikes = int(np.count_nonzero(np.abs(jerks - mean) > config.jerk_spike_sigma * std))
    return _ratio(spikes, len(jerks))


def accel_sign_change_rate(series: DerivedSeries) -> float:
    """Sign flips of ax and ay per acceleration sample.

    Zero components neither count as a flip nor reset the last known sign.
    """
    acc = series.accelerations
    changes = 0
    last_x = last_y = 0.0
    for ax, ay in acc[:, :2]:
        sx, sy = np.sign(ax), np.sign(ay)
        if last_x != 0 and sx != 0 and sx != last_x:
            changes += 1
        if last_y != 0 and sy != 0 and sy != last_y:
            changes += 1
        if sx != 0:
            last_x = sx
        if sy != 0:
            last_y = sy
    return _ratio(changes, len(acc))


def timing_cv(series: DerivedSeries) -> float:
    """Coefficient of variation of the inter-sample gaps."""
    gaps = series.gaps
    if len(gaps) <= 10:
        return 0.0
    mean = float(np.mean(gaps))
    variance = float(np.var(gaps))
    if variance <= 0 or mean == 0:
        return 0.0
    return math.sqrt(variance) / mean


def curvature_change_rate(series: DerivedSeries, config: DetectionConfig) -> float:
    curv = series.curvatures
    if len(curv) == 0:
        return 0.0
    sudden = int(np.count_nonzero(np.abs(np.diff(curv)) > config.curvature_change_angle))
    return sudden / len(curv)


def velocity_peaks_per_second(series: DerivedSeries, config: DetectionConfig) -> float:
    """Ballistic sub-movements, counted as local speed maxima."""
    speed = series.speed_magnitudes
    factor = config.peak_factor
    peaks = 0
    for i in range(2, len(speed) - 2):
        prev = (speed[i - 2] + speed[i - 1]) / 2
        nxt = (speed[i + 1] + speed[i + 2]) / 2
        curr = speed[i]
        if curr > prev * factor and curr > nxt * factor and curr > config.peak_min_speed:
            peaks += 1
    duration = series.duration
    return peaks / (duration / 1000.0) if duration > 0 else 0.0


def path_efficiency(series: DerivedSeries) -> float:
    """Direct distance over travelled distance; 1.0 is a perfect beeline."""
    pts = series.points
    if len(pts) < 2:
        return 0.0
    total = float(np.sum(series.step_lengths))
    direct = math.hypot(pts[-1, 0] - pts[0, 0], pts[-1, 1] - pts[0, 1])
    return direct / total if direct > 0 else 0.0


def noise_autocorrelation(series: DerivedSeries) -> float:
    """Lag-1 autocorrelation of the smoothing residuals, x and y pooled.

    Synthetic Gaussian jitter is white; physiological tremor is not.
    """
    res = series.residuals
    if len(res) <= 10:
        return 0.0
    centered = res - res.mean(axis=0)
    autocorr = float(np.sum(centered[1:] * centered[:-1]))
    variance = float(np.sum(centered ** 2))
    return autocorr / variance if variance > 0 else 0.0


def direction_entropy(series: DerivedSeries, config: DetectionConfig) -> float:
    """Shannon entropy (bits) of |turning angle| over small/medium/large buckets."""
    changes = np.abs(series.curvatures[1:])
    small, medium = config.entropy_small_turn, config.entropy_medium_turn
    total = len(changes) or 1
    buckets = [
        np.count_nonzero(changes < small),
        np.count_nonzero((changes >= small) & (changes < medium)),
        np.count_nonzero(changes >= medium),
    ]
    entropy = 0.0
    for count in buckets:
        p = count / total
        if p > 0:
            entropy -= p * math.log2(p)
    return float(entropy)


def velocity_reversal_rate(series: DerivedSeries) -> float:
    """Share of velocity samples turning more than 90 degrees (overshoot corrections)."""
    vel = series.velocities
    if len(vel) == 0:
        return 0.0
    angles = np.arctan2(vel[:, 1], vel[:, 0])
    reversals = sum(1 for a, b in zip(angles[:-1], angles[1:]) if _wrap_angle(b - a) > math.pi / 2)
    return reversals / len(vel)


def hesitation_rate(series: DerivedSeries, config: DetectionConfig) -> float:
    # Observed only; bots hesitate more than some humans so it does not vote.
    speed = series.speed_magnitudes
    drop, floor = config.hesitation_drop, config.hesitation_min_speed
    hesitations = 0
    for i in range(5, len(speed) - 5):
        before = float(np.mean(speed[i - 5:i]))
        after = float(np.mean(speed[i + 1:i + 6]))
        at = speed[i]
        if at < before * drop and at < after * drop and before > floor and after > floor:
            hesitations += 1
    return _ratio(hesitations, len(speed))


def jerk_autocorrelation(series: DerivedSeries) -> float:
    jerks = series.jerks
    if len(jerks) <= 20:
        return 0.0
    centered = jerks - np.mean(jerks)
    denom = float(np.sum(centered ** 2))
    if denom <= 0:
        return 0.0
    return float(np.sum(centered[1:] * centered[:-1])) / denom


def linear_accel_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of acceleration windows whose magnitude fits a line.

    A quadratic Bezier has linearly changing acceleration. Windows holding
    non-finite samples are not evaluated.
    """
    acc = series.accelerations
    mags = np.hypot(acc[:, 0], acc[:, 1])
    size = config.linear_accel_window
    idx = np.arange(size, dtype=float)
    linear = 0
    total = 0
    for start in range(0, len(mags) - size, config.linear_accel_stride):
        segment = mags[start:start + size]
        if not np.all(np.isfinite(segment)):
            continue
        slope, intercept = np.polyfit(idx, segment, 1)
        ss_res = float(np.sum((segment - (intercept + slope * idx)) ** 2))
        ss_tot = float(np.sum((segment - np.mean(segment)) ** 2))
        r2 = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0
        total += 1
        if r2 > config.linear_accel_r2:
            linear += 1
    return _ratio(linear, total)


def symmetry_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of movements whose speed profile peaks near the middle.

    A movement starts where speed rises from below movement_start_low_speed
    to above movement_start_high_speed. Ease-in-out curves accelerate and
    decelerate for equal spans.
    """
    speed = series.speed_magnitudes
    starts = [0]
    for i in range(1, len(speed)):
        if speed[i - 1] < config.movement_start_low_speed and speed[i] > config.movement_start_high_speed:
            starts.append(i)
    starts.append(len(speed))

    symmetric = 0
    total = 0
    for start, end in zip(starts[:-1], starts[1:]):
        if end - start < config.symmetry_min_samples:
            continue
        segment = speed[start:end]
        peak = int(np.argmax(segment))
        if 2 < peak < len(segment) - 2:
            accel_phase = peak
            decel_phase = len(segment) - peak
            ratio = min(accel_phase, decel_phase) / max(accel_phase, decel_phase)
            total += 1
            if ratio > config.symmetric_phase_ratio:
                symmetric += 1
    return _ratio(symmetric, total)


def xy_noise_correlation(series: DerivedSeries) -> float:
    """Absolute correlation between x and y residuals.

    Hand tremor moves both axes together; scripts add independent noise.
    """
    res = series.residuals
    if len(res) <= 10:
        return 0.0
    centered = res - res.mean(axis=0)
    cov = float(np.sum(centered[:, 0] * centered[:, 1]))
    var_x = float(np.sum(centered[:, 0] ** 2))
    var_y = float(np.sum(centered[:, 1] ** 2))
    if var_x <= 0 or var_y <= 0:
        return 0.0
    return abs(cov / math.sqrt(var_x * var_y))


def perfect_start_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of post-pause starts that head in one direction from the first sample."""
    pts = series.points
    perfect = 0
    total = 0
    for i in range(1, len(pts) - 10):
        if pts[i, 2] - pts[i - 1, 2] <= config.movement_pause_ms:
            continue
        init = pts[i:i + 8]
        dir1 = math.atan2(init[2, 1] - init[0, 1], init[2, 0] - init[0, 0])
        dir2 = math.atan2(init[7, 1] - init[5, 1], init[7, 0] - init[5, 0])
        total += 1
        if _wrap_angle(dir1 - dir2) < config.perfect_start_angle:
            perfect += 1
    return _ratio(perfect, total)


def smooth_start_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of post-pause starts whose speed never drops below the tolerance."""
    pts = series.points
    tolerance = config.smooth_start_tolerance
    smooth = 0
    total = 0
    for i in range(1, len(pts) - 8):
        if pts[i, 2] - pts[i - 1, 2] <= config.movement_pause_ms:
            continue
        init_speeds = []
        for j in range(i, min(i + 6, len(pts))):
            dt = pts[j, 2] - pts[j - 1, 2]
            if dt > 0:
                init_speeds.append(math.hypot(pts[j, 0] - pts[j - 1, 0], pts[j, 1] - pts[j - 1, 1]) / dt)
        if len(init_speeds) < 4:
            continue
        total += 1
        if all(b >= a * tolerance for a, b in zip(init_speeds[:-1], init_speeds[1:])):
            smooth += 1
    return _ratio(smooth, total)


def fidget_ratio(series: DerivedSeries, config: DetectionConfig) -> float:
    """Share of near-still periods that still contain micro-movements."""
    speed = series.speed_magnitudes
    pts = series.points
    fidgets = 0
    still = 0
    for i in range(5, len(speed) - 5):
        local_speed = float(np.mean(speed[i - 2:i + 3]))
        if local_speed >= config.still_speed:
            continue
        still += 1
        micro = math.hypot(pts[i + 2, 0] - pts[i - 2, 0], pts[i + 2, 1] - pts[i - 2, 1])
        if config.fidget_min_px < micro < config.fidget_max_px:
            fidgets += 1
    return _ratio(fidgets, still)


def anti_smoothing_signals(
    metrics: Dict[str, float], config: DetectionConfig
) -> List[Tuple[str, bool]]:
    """Evaluate the eighteen named signals; True means "too smooth/regular"."""
    th = config.thresholds
    return [
        ("jerkSpikeRatio", bool(metrics["jerkSpikeRatio"] < th.jerk_spike_ratio)),
        ("accelSignChangeRate", bool(metrics["accelSignChangeRate"] < th.accel_sign_change_rate)),
        ("curvatureChangeRate", bool(metrics["curvatureChangeRate"] < th.curvature_change_rate)),
        ("velocityPeaksPerSecond", bool(metrics["velocityPeaksPerSecond"] < th.velocity_peaks_per_second)),
        ("pathEfficiency", bool(metrics["pathEfficiency"] > th.path_efficiency)),
        ("noiseAutocorr", bool(abs(metrics["noiseAutocorr"]) < th.noise_autocorr)),
        ("directionEntropy", bool(metrics["directionEntropy"] < th.direction_entropy)),
        ("reversalRate", bool(metrics["reversalRate"] < th.reversal_rate)),
        ("jerkAutocorr", bool(abs(metrics["jerkAutocorr"]) < th.jerk_autocorr)),
        ("linearAccelRatio", bool(metrics["linearAccelRatio"] > th.linear_accel_ratio)),
        ("symmetryRatio", bool(metrics["symmetryRatio"] > th.symmetry_ratio)),
        ("xyNoiseCorr", bool(metrics["xyNoiseCorr"] < th.xy_noise_corr)),
        ("perfectStartRatio", bool(metrics["perfectStartRatio"] > th.perfect_start_ratio)),
        ("smoothStartRatio", bool(metrics["smoothStartRatio"] > th.smooth_start_ratio)),
        ("fidgetRatio", bool(metrics["fidgetRatio"] < th.fidget_ratio)),
        ("highReversalRatio", bool(metrics["reversalRatio"] > th.high_reversal_ratio)),
        ("lowSmoothRatio", bool(metrics["smoothRatio"] < th.low_smooth_ratio)),
        ("highCurvatureChange", bool(metrics["curvatureChangeRate"] > th.high_curvature_change)),
    ]


def check_not_robotic(
    series: DerivedSeries, config: DetectionConfig, base_metrics: Dict[str, float]
) -> Tuple[bool, Dict[str, Any]]:
    """Straightness, anti-smoothing suite and timing regularity combined.

    Args:
        series: Derived trace.
        config: Detection thresholds.
        base_metrics: Metrics already produced by the primary checks; the
            suite reuses smoothRatio and reversalRatio from them.

    Returns:
        Tuple of (passed, metrics).
    """
    metrics: Dict[str, Any] = {
        "straightRatio": straight_window_ratio(series, config),
        "jerkSpikeRatio": jerk_spike_ratio(series, config),
        "accelSignChangeRate": accel_sign_change_rate(series),
        "curvatureChangeRate": curvature_change_rate(series, config),
        "timingCV": timing_cv(series),
        "velocityPeaksPerSecond": velocity_peaks_per_second(series, config),
        "pathEfficiency": path_efficiency(series),
        "noiseAutocorr": noise_autocorrelation(series),
        "directionEntropy": direction_entropy(series, config),
        "reversalRate": velocity_reversal_rate(series),
        "hesitationRate": hesitation_rate(series, config),
        "jerkAutocorr": jerk_autocorrelation(series),
        "linearAccelRatio": linear_accel_ratio(series, config),
        "symmetryRatio": symmetry_ratio(series, config),
        "xyNoiseCorr": xy_noise_correlation(series),
        "perfectStartRatio": perfect_start_ratio(series, config),
        "smoothStartRatio": smooth_start_ratio(series, config),
        "fidgetRatio": fidget_ratio(series, config),
    }

    signals = anti_smoothing_signals({**base_metrics, **metrics}, config)
    signal_count = sum(1 for _, triggered in signals if triggered)
    is_bezier_like = signal_count >= config.signal_threshold
    is_timing_too_regular = metrics["timingCV"] < config.min_timing_cv
    is_too_straight = metrics["straightRatio"] >= config.max_straight_ratio

    metrics.update({
        "bezierSignalCount": signal_count,
        "isBezierLike": is_bezier_like,
        "isTimingTooRegular": is_timing_too_regular,
        "isTooStraight": is_too_straight,
        "triggeredSignals": [i for i, (_, triggered) in enumerate(signals) if triggered],
        "triggeredSignalNames": [name for name, triggered in signals if triggered],
    })
    passed = not is_too_straight and not is_bezier_like and not is_timing_too_regular
    return passed, metrics


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def evaluate_signals(series: DerivedSeries, target_hits: int, config: DetectionConfig) -> SignalEvaluation:
    """Run every check over a derived trace.

    Target tracking is not measured here: the client reports how many
    targets were hit and the check passes once the configured count is met.
    """
    metrics: Dict[str, Any] = {}

    speed, m = check_speed(series, config)
    metrics.update(m)
    curves, m = check_curves(series, config)
    metrics.update(m)
    jitter, m = check_jitter(series, config)
    metrics.update(m)
    timing, m = check_timing(series, config)
    metrics.update(m)
    continuous, m = check_continuous(series, config)
    metrics.update(m)
    not_robotic, m = check_not_robotic(series, config, metrics)
    metrics.update(m)

    checks = SignalVector(
        speed=speed,
        curves=curves,
        jitter=jitter,
        timing=timing,
        continuous=continuous,
        not_robotic=not_robotic,
        target_tracking=target_hits >= config.target_hits_required,
    )
    logger.debug(
        "Signals: checks=%s bezier_signals=%d triggered=%s",
        checks.model_dump(by_alias=True), metrics["bezierSignalCount"], metrics["triggeredSignalNames"],
    )
    return SignalEvaluation(checks=checks, metrics=metrics)
