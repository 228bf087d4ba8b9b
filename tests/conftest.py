"""Shared fixtures for placeholder engine tests."""

import pytest

from placeholder_api import EngineSettings, PlaceholderEngine


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Counter:
    """Callback returning an increasing number on every call."""

    def __init__(self):
        self.calls = 0

    def __call__(self, token, param, target=None):
        self.calls += 1
        return str(self.calls)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    """Engine on a fake clock with a short callback timeout."""
    eng = PlaceholderEngine(EngineSettings(callback_timeout_ms=1000), clock=clock)
    yield eng
    eng.close()


@pytest.fixture
def counter():
    return Counter()
