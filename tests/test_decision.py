"""
Tests for the verdict: scenarios, insufficient data and result invariants.
"""

from __future__ import annotations

import pytest

from mouse_check.config import DETECTION_VERSION, load_config
from mouse_check.movement import SignalVector, analyze_movement
from mouse_check.movement.decision import (REASON_CHECKS_FAILED,
                                           REASON_DEGENERATE_TRACE,
                                           REASON_INSUFFICIENT_DATA, aggregate,
                                           is_ai_detected)

CONFIG = load_config(target_hits_required=5)


@pytest.mark.parametrize("n", [0, 1, 14])
def test_short_traces_are_insufficient(n, human_points):
    result = analyze_movement(human_points[:n], 10, CONFIG)
    assert result.verified is False
    assert result.checks_passed == 0
    assert result.reason == REASON_INSUFFICIENT_DATA
    assert result.point_count == n
    assert result.metrics == {}


def test_fifteen_points_are_analyzed(human_points):
    result = analyze_movement(human_points[:15], 10, CONFIG)
    assert result.reason != REASON_INSUFFICIENT_DATA
    assert result.metrics


def test_scenario_straight_line(straight_points):
    result = analyze_movement(straight_points, 6, CONFIG)
    assert result.metrics["straightRatio"] >= 0.5
    assert result.checks.not_robotic is False
    assert result.verified is False
    assert result.ai_detected is True
    assert result.reason == REASON_CHECKS_FAILED


def test_scenario_eased_curve(eased_points):
    result = analyze_movement(eased_points, 6, CONFIG)
    assert result.metrics["isTooStraight"] is False
    assert result.metrics["bezierSignalCount"] >= 3
    assert result.checks.not_robotic is False
    assert result.verified is False


def test_scenario_human_path(human_points):
    result = analyze_movement(human_points, 6, CONFIG)
    assert all(result.checks.primary())
    assert result.checks.target_tracking is True
    assert result.verified is True
    assert result.checks_passed == 7
    assert result.ai_detected is False
    assert result.reason is None


def test_scenario_frozen_cursor(frozen_points):
    result = analyze_movement(frozen_points, 6, CONFIG)
    assert result.verified is False
    assert result.point_count == 20


def test_identical_timestamps_do_not_raise():
    points = [{"x": 10.0 + i, "y": 10.0, "t": 500.0} for i in range(20)]
    result = analyze_movement(points, 6, CONFIG)
    assert result.verified is False
    assert result.duration == 0.0
    assert result.metrics["pointsPerSecond"] == 0.0


def test_human_path_without_enough_hits(human_points):
    result = analyze_movement(human_points, 4, CONFIG)
    assert result.verified is False
    assert result.checks_passed == 6
    assert result.ai_detected is False


@pytest.mark.parametrize("fixture_name", ["straight_points", "eased_points", "human_points", "frozen_points"])
def test_result_invariants(fixture_name, request):
    result = analyze_movement(request.getfixturevalue(fixture_name), 6, CONFIG)
    assert 0 <= result.checks_passed <= 7
    if result.verified:
        assert result.checks_passed == 7
        assert result.ai_detected is False


def test_ai_detected_needs_two_sensitive_failures():
    assert not is_ai_detected(SignalVector(speed=False, jitter=False, curves=True, continuous=True,
                                           not_robotic=True, timing=True))
    assert not is_ai_detected(SignalVector(curves=False, continuous=True, not_robotic=True, timing=True))
    assert is_ai_detected(SignalVector(curves=False, continuous=True, not_robotic=False, timing=True))


def test_aggregate_counts_target_tracking():
    checks = SignalVector(speed=True, curves=True, jitter=True, timing=True, continuous=True,
                          not_robotic=True, target_tracking=False)
    verdict = aggregate(checks)
    assert verdict == {"verified": False, "checks_passed": 6, "ai_detected": False}


def test_result_carries_config_and_camel_case_dump(human_points):
    result = analyze_movement(human_points, 6, CONFIG)
    dumped = result.model_dump(by_alias=True)
    assert dumped["detectionVersion"] == DETECTION_VERSION
    assert dumped["totalChecks"] == 7
    assert dumped["checks"]["notRobotic"] is True
    assert dumped["checks"]["targetTracking"] is True
    assert dumped["detectionConfig"]["targetHitsRequired"] == 5
    assert dumped["detectionConfig"]["thresholds"]["jerkSpikeRatio"] == 0.035


def test_result_is_immutable(human_points):
    result = analyze_movement(human_points, 6, CONFIG)
    with pytest.raises(Exception):
        result.verified = False


def test_target_hits_override_from_environment(monkeypatch):
    monkeypatch.setenv("MOUSE_CHECK_TARGET_HITS", "3")
    assert load_config().target_hits_required == 3
    monkeypatch.delenv("MOUSE_CHECK_TARGET_HITS")
    assert load_config().target_hits_required == 5


def test_overflowing_trace_fails_closed(human_points):
    import json

    huge = [{"x": p["x"] * 1e200, "y": p["y"] * 1e200, "t": p["t"]} for p in human_points]
    result = analyze_movement(huge, 6, CONFIG)
    assert result.verified is False
    assert result.reason == REASON_DEGENERATE_TRACE
    # Result stays serializable as strict JSON
    json.dumps(result.model_dump(by_alias=True), allow_nan=False)
