"""
Shared fixtures for market service tests.
"""

import pytest

from shared.metrics import MetricsCollector
from shared.test_helpers import InMemoryStore, ManualClock


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock)


@pytest.fixture
def metrics():
    return MetricsCollector("market")
