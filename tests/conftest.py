"""
Pytest configuration for behavioral engine tests.
"""

import pytest

from chess_mirror.service import TelemetryService
from chess_mirror.storage import ProfileStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (long randomized sequences)"
    )


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-slow", action="store_true", default=False, help="Run slow tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is specified."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="Need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture
def store():
    """Fresh in-memory store."""
    store = ProfileStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def service(store) -> TelemetryService:
    return TelemetryService(store)


class FixedRandom:
    """Stand-in for random.Random whose random() always returns `value`."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value

    def uniform(self, a: float, b: float) -> float:
        return a


@pytest.fixture
def always_fire() -> FixedRandom:
    """RNG that makes every probabilistic gate pass."""
    return FixedRandom(0.0)


@pytest.fixture
def never_fire() -> FixedRandom:
    """RNG that makes every probabilistic gate fail."""
    return FixedRandom(0.99)
