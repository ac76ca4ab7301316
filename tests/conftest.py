"""Common fixtures for session tests."""

import pytest

from trace_sessions.sessions import BulkThresholds, SessionService
from trace_sessions.store.memory import MemorySessionStore


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def thresholds() -> BulkThresholds:
    return BulkThresholds(max_batch_size_bytes=10 * 1024 * 1024, payload_size_threshold_bytes=1024 * 1024, elements_count_threshold=10)


@pytest.fixture
def service(store: MemorySessionStore, thresholds: BulkThresholds) -> SessionService:
    return SessionService(store, thresholds=thresholds)
