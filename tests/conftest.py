"""
Pytest fixtures for mouse_check tests: synthetic pointer traces and an API client.
"""

from __future__ import annotations

import math
import os
import tempfile

import pytest

# Keep service logs out of the working tree and avoid the random-key warning.
os.environ.setdefault("MOUSE_CHECK_LOG_DIR", tempfile.mkdtemp(prefix="mouse_check_logs_"))
os.environ.setdefault("VERIFICATION_SECRET", "test-secret")

TEST_SECRET = "test-secret"


def straight_path(n: int = 50, step: float = 5.0, dt: float = 16.0) -> list[dict]:
    """Evenly spaced points on a horizontal line with constant timing."""
    return [{"x": 100.0 + i * step, "y": 200.0, "t": 1000.0 + i * dt} for i in range(n)]


def _ease_in_out_cubic(u: float) -> float:
    if u < 0.5:
        return 4 * u ** 3
    return 1 - (-2 * u + 2) ** 3 / 2


def eased_arc_path(n: int = 60, radius: float = 150.0, dt: float = 16.0) -> list[dict]:
    """Half circle traversed with an ease-in-out cubic profile, as a Bezier bot would."""
    points = []
    for k in range(n):
        phi = math.pi * _ease_in_out_cubic(k / (n - 1))
        points.append({
            "x": 300.0 + radius * math.cos(phi),
            "y": 300.0 + radius * math.sin(phi),
            "t": 1000.0 + k * dt,
        })
    return points


TURN_PATTERN = [0.25, 0.1, 0.0, 0.1, -0.45, 0.0, -0.25, -0.1, 0.0, -0.1, 0.45, 0.0]
REVERSAL_STEPS = {23, 41, 59, 77}
GAP_PATTERN = [11.0, 19.0, 13.0, 17.0]


def human_path() -> list[dict]:
    """Wandering trace with uneven timing, overshoot reversals and a slow fidget.

    100 samples. The heading weaves around 45 degrees, four steps turn back
    on themselves, gaps cycle through 11/19/13/17 ms and steps 85-92 creep
    one pixel at a time.
    """
    heading = math.pi / 4 + TURN_PATTERN[0]
    x, y, t = 200.0, 200.0, 1000.0
    points = [{"x": x, "y": y, "t": t}]
    for j in range(99):
        if j > 0:
            heading += math.pi if j in REVERSAL_STEPS else TURN_PATTERN[j % 12]
        length = 1.0 if 85 <= j <= 92 else 8.0
        dt = 9.0 if j == 0 else GAP_PATTERN[j % 4]
        x += length * math.cos(heading)
        y += length * math.sin(heading)
        t += dt
        points.append({"x": x, "y": y, "t": t})
    return points


def frozen_path(n: int = 20, dt: float = 16.0) -> list[dict]:
    """Cursor that never moves."""
    return [{"x": 150.0, "y": 150.0, "t": 1000.0 + i * dt} for i in range(n)]


@pytest.fixture
def straight_points():
    return straight_path()


@pytest.fixture
def eased_points():
    return eased_arc_path()


@pytest.fixture
def human_points():
    return human_path()


@pytest.fixture
def frozen_points():
    return frozen_path()


class FakeClock:
    """Millisecond clock the tests advance by hand."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    from mouse_check.sessions import SessionRegistry

    return SessionRegistry(ttl_seconds=3600, clock=clock)


@pytest.fixture
def client(registry):
    """FastAPI TestClient over a fresh app with a known key and the fake-clock registry."""
    from fastapi.testclient import TestClient

    from mouse_check.config import load_config
    from mouse_check.main import create_app

    app = create_app(secret_key=TEST_SECRET, config=load_config(target_hits_required=5), registry=registry)
    with TestClient(app) as c:
        yield c
