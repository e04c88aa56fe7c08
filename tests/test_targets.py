"""
Tests for the server-side target hit recount.
"""

from __future__ import annotations

from mouse_check.movement import count_target_hits


def _trace(coords, start=0.0, dt=50.0):
    return [{"x": x, "y": y, "t": start + i * dt} for i, (x, y) in enumerate(coords)]


def test_hit_after_reaction_floor():
    points = _trace([(0, 0), (50, 50), (95, 100), (100, 100)])
    targets = [{"x": 100, "y": 100, "t": 0}]
    # (95, 100) arrives at t=100, too soon; (100, 100) at t=150 is not past the floor either
    assert count_target_hits(points, targets) == 0
    points.append({"x": 100, "y": 100, "t": 200})
    assert count_target_hits(points, targets) == 1


def test_outside_radius_is_not_a_hit():
    points = _trace([(0, 0), (160, 100), (141, 100)], start=1000)
    assert count_target_hits(points, [{"x": 100, "y": 100, "t": 0}]) == 0


def test_each_hit_moves_to_next_target():
    targets = [{"x": 100, "y": 100, "t": 0}, {"x": 300, "y": 300, "t": 400}]
    points = _trace([(100, 100), (100, 100), (300, 300), (300, 300), (300, 300)], start=200, dt=100)
    # t=200 hits the first; the second only counts at t=600, past its floor
    assert count_target_hits(points, targets) == 2
    assert count_target_hits(points[:4], targets) == 1


def test_stops_when_targets_run_out():
    points = _trace([(10, 10)] * 10, start=1000)
    assert count_target_hits(points, [{"x": 10, "y": 10, "t": 0}]) == 1
    assert count_target_hits(points, []) == 0
