"""Detection thresholds and service constants.

Every number the classifier compares against lives here. Bump
DETECTION_VERSION whenever a threshold or signal changes so that stored
results can be traced back to the configuration that produced them.
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DETECTION_VERSION = "1.4.0"

MIN_POINTS = 15
TARGET_HITS_REQUIRED = 5
TOTAL_CHECKS = 7

SESSION_TTL_SECONDS = 3600
SESSION_ID_LENGTH = 16

# Target presentation (hit-testing on the client)
TARGET_HIT_RADIUS_PX = 40.0
TARGET_REACTION_FLOOR_MS = 150.0

# Accepted sample range; anything outside is rejected as malformed input
MAX_COORDINATE_PX = 1_000_000.0
MAX_TIMESTAMP_MS = 1e13


class _ThresholdModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class BezierThresholds(_ThresholdModel):
    """Cut-offs for the anti-smoothing signal suite.

    Adjusted from confusion matrix analysis of recorded human and bot traces.
    """

    jerk_spike_ratio: float = 0.035
    accel_sign_change_rate: float = 0.35
    curvature_change_rate: float = 0.12
    velocity_peaks_per_second: float = 2.0
    path_efficiency: float = 0.75
    noise_autocorr: float = 0.08          # some humans have low autocorr
    direction_entropy: float = 1.4
    reversal_rate: float = 0.02
    jerk_autocorr: float = 0.12
    linear_accel_ratio: float = 0.3
    symmetry_ratio: float = 0.6
    xy_noise_corr: float = 0.10
    perfect_start_ratio: float = 0.9      # confident humans start cleanly
    smooth_start_ratio: float = 0.6
    fidget_ratio: float = 0.10
    # Strong separators: bots 0.29-0.61, humans 0-0.01
    high_reversal_ratio: float = 0.15
    # Bots 0.21-0.37, humans 0.62-0.85
    low_smooth_ratio: float = 0.45
    # Bots 0.72-0.79, humans 0.23-0.41
    high_curvature_change: float = 0.55


class DetectionConfig(_ThresholdModel):
    """Versioned threshold set consumed by the movement classifier."""

    version: str = DETECTION_VERSION
    min_points: int = MIN_POINTS
    target_hits_required: int = TARGET_HITS_REQUIRED

    # speed
    min_speed_samples: int = 10
    speed_thirds_delta: float = 0.05
    speed_range_factor: float = 1.5

    # curves
    min_vector_length: float = 0.5
    smooth_angle: float = 0.3
    smooth_ratio_min: float = 0.3
    smooth_ratio_max: float = 0.95

    # jitter
    max_reversal_ratio: float = 0.6

    # timing
    min_duration_ms: float = 300.0
    pause_gap_ms: float = 50.0
    max_pause_ratio: float = 0.3
    long_pause_gap_ms: float = 150.0
    max_long_pause_ratio: float = 0.1

    # continuous
    small_gap_ms: float = 30.0
    min_continuous_ratio: float = 0.4
    min_points_per_second: float = 15.0

    # straightness
    straight_window: int = 20
    straight_stride: int = 10
    straight_min_length: float = 10.0
    straight_deviation_ratio: float = 0.005
    straight_max_deviation: float = 2.0
    max_straight_ratio: float = 0.5

    # anti-smoothing suite
    signal_threshold: int = 3
    thresholds: BezierThresholds = Field(default_factory=BezierThresholds)

    # timing regularity
    min_timing_cv: float = 0.12

    # anti-smoothing metric parameters
    movement_pause_ms: float = 100.0      # gap that starts a new movement
    jerk_spike_sigma: float = 2.0
    curvature_change_angle: float = 0.3
    peak_factor: float = 1.15
    peak_min_speed: float = 0.5
    entropy_small_turn: float = 0.05
    entropy_medium_turn: float = 0.2
    hesitation_drop: float = 0.5
    hesitation_min_speed: float = 0.3
    linear_accel_window: int = 15
    linear_accel_stride: int = 10
    linear_accel_r2: float = 0.85
    movement_start_low_speed: float = 0.3
    movement_start_high_speed: float = 0.5
    symmetry_min_samples: int = 10
    symmetric_phase_ratio: float = 0.7
    perfect_start_angle: float = 0.35
    smooth_start_tolerance: float = 0.9
    still_speed: float = 0.2
    fidget_min_px: float = 1.0
    fidget_max_px: float = 10.0


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def load_config(target_hits_required: Optional[int] = None) -> DetectionConfig:
    """Build the detection config, applying environment overrides.

    MOUSE_CHECK_TARGET_HITS overrides the number of target hits required.
    """
    hits = target_hits_required
    if hits is None:
        hits = _env_int("MOUSE_CHECK_TARGET_HITS", TARGET_HITS_REQUIRED)
    return DetectionConfig(target_hits_required=hits)


def session_ttl_seconds() -> int:
    """Session lifetime, overridable through MOUSE_CHECK_SESSION_TTL."""
    return _env_int("MOUSE_CHECK_SESSION_TTL", SESSION_TTL_SECONDS)
