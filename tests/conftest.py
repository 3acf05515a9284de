"""
Pytest configuration and shared fixtures for Tandem tests.
"""

import tempfile
from pathlib import Path

import pytest

from tandem.core.correlation import CorrelationTracker, set_correlation_tracker
from tandem.infrastructure.metrics import InMemoryMetricsSink
from tandem.infrastructure.resilience import InMemoryStateStore


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker():
    """A fresh tracker per test so contexts never leak between tests."""
    return CorrelationTracker(service_name="test-service")


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def metrics_sink():
    return InMemoryMetricsSink()


@pytest.fixture(autouse=True)
def reset_default_tracker():
    """Drop the process default tracker after each test."""
    yield
    set_correlation_tracker(None)
