"""Combine the signal vector into a verification verdict."""

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config.constants import TOTAL_CHECKS, DetectionConfig, load_config
from .features import extract_series
from .signals import SignalVector, evaluate_signals

logger = logging.getLogger(__name__)

REASON_INSUFFICIENT_DATA = "insufficient_data"
REASON_CHECKS_FAILED = "checks_failed"
REASON_DEGENERATE_TRACE = "degenerate_trace"


def _non_finite_metrics(metrics: Dict[str, Any]) -> List[str]:
    return [k for k, v in metrics.items() if isinstance(v, float) and not math.isfinite(v)]


class AnalysisResult(BaseModel):
    """Immutable snapshot of one classification."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    verified: bool
    checks: SignalVector
    checks_passed: int = Field(..., ge=0, le=TOTAL_CHECKS)
    total_checks: int = TOTAL_CHECKS
    ai_detected: bool
    duration: float = 0.0
    point_count: int = 0
    reason: Optional[str] = None
    detection_version: str
    detection_config: Dict[str, Any] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)


def count_checks_passed(checks: SignalVector) -> int:
    return sum(1 for c in checks.primary() if c) + (1 if checks.target_tracking else 0)


def is_ai_detected(checks: SignalVector) -> bool:
    """True when at least two of the automation-sensitive checks fail."""
    failures = [not checks.curves, not checks.continuous, not checks.not_robotic, not checks.timing]
    return sum(failures) >= 2


def is_verified(checks: SignalVector) -> bool:
    return all(checks.primary()) and checks.target_tracking


def aggregate(checks: SignalVector) -> Dict[str, Any]:
    """Derive verdict, pass count and automation flag from the checks."""
    return {
        "verified": is_verified(checks),
        "checks_passed": count_checks_passed(checks),
        "ai_detected": is_ai_detected(checks),
    }


def analyze_movement(
    points: Sequence[Mapping[str, Any]],
    target_hits: int = 0,
    config: Optional[DetectionConfig] = None,
) -> AnalysisResult:
    """Classify a pointer trace as human or automated.

    Args:
        points: Ordered {x, y, t} samples, t in milliseconds.
        target_hits: Number of targets the client reports as hit.
        config: Detection thresholds; environment defaults when omitted.

    Returns:
        AnalysisResult. Traces shorter than the minimum sample count yield a
        negative result with reason ``insufficient_data`` and no further
        computation.
    """
    config = config if config is not None else load_config()
    config_dump = config.model_dump(by_alias=True)

    if not points or len(points) < config.min_points:
        logger.info("Insufficient data: %d points (minimum %d)", len(points or []), config.min_points)
        return AnalysisResult(
            verified=False,
            checks=SignalVector(),
            checks_passed=0,
            ai_detected=False,
            point_count=len(points or []),
            reason=REASON_INSUFFICIENT_DATA,
            detection_version=config.version,
            detection_config=config_dump,
        )

    series = extract_series(points)
    evaluation = evaluate_signals(series, target_hits, config)
    verdict = aggregate(evaluation.checks)
    metrics = dict(evaluation.metrics)
    reason = None if verdict["verified"] else REASON_CHECKS_FAILED

    # Overflowing kinematics make every comparison meaningless; fail closed.
    broken = _non_finite_metrics(metrics)
    if broken:
        logger.warning("Non-finite metrics %s; rejecting trace", broken)
        for key in broken:
            metrics[key] = None
        verdict["verified"] = False
        reason = REASON_DEGENERATE_TRACE

    logger.info(
        "Analysis: verified=%s checks_passed=%d ai_detected=%s points=%d duration=%.0fms",
        verdict["verified"], verdict["checks_passed"], verdict["ai_detected"],
        series.point_count, series.duration,
    )
    return AnalysisResult(
        checks=evaluation.checks,
        duration=series.duration,
        point_count=series.point_count,
        reason=reason,
        detection_version=config.version,
        detection_config=config_dump,
        metrics=metrics,
        **verdict,
    )
