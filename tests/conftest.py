"""
Pytest configuration and fixtures for nftmeta tests.
"""

import tempfile
import threading

import pytest

from nftmeta.manager import RegistryManager
from nftmeta.schema import AssetRef, RegistryConfig


T0 = 1_700_000_000
COLLECTION = "0x" + "ab" * 20
WRITER = "writer-1"
ALICE = "alice"
BOB = "bob"


class FakeClock:
    """Mutable clock returning Unix seconds."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> float:
        return float(self.now)

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    """Create a fake clock starting at T0."""
    return FakeClock()


@pytest.fixture
def test_data_dir():
    """Create temporary test data directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def registry_config():
    return RegistryConfig()


@pytest.fixture
def manager(clock, registry_config):
    """In-memory registry with one writer and two owned tokens."""
    registry = RegistryManager(config=registry_config, clock=clock)
    registry.grant_writer(WRITER)
    registry.assign_owner(COLLECTION, 1, ALICE)
    registry.assign_owner(COLLECTION, 2, ALICE)
    registry.assign_owner(COLLECTION, 3, BOB)
    return registry


@pytest.fixture
def persistent_manager(clock, test_data_dir):
    """Registry persisted to a temporary directory."""
    registry = RegistryManager(storage_dir=test_data_dir, clock=clock)
    registry.grant_writer(WRITER)
    registry.assign_owner(COLLECTION, 1, ALICE)
    return registry


@pytest.fixture
def token():
    return AssetRef(collection=COLLECTION, token_id=1)


@pytest.fixture
def sample_keys():
    """Distinct 32-byte storage keys."""
    return [bytes([i]) * 32 for i in range(1, 6)]


@pytest.fixture
def recorded_events(manager):
    """Collect notifications delivered by the manager."""
    events = []
    manager.subscribe(events.append)
    return events


class ThreadSafeCounter:
    """Thread-safe counter for testing."""

    def __init__(self, initial_value: int = 0):
        self._value = initial_value
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def get_value(self) -> int:
        with self._lock:
            return self._value


@pytest.fixture
def thread_counter():
    """Create thread-safe counter for testing."""
    return ThreadSafeCounter()


# Test markers for different test categories
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as a concurrency test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file paths and names."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if "concurrent" in item.name or "thread" in item.name:
            item.add_marker(pytest.mark.concurrency)
