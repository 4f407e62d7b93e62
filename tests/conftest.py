"""
Shared pytest fixtures and configuration for jobspine tests.

This module provides:
- An in-memory connection and store per test
- A ManualClock pinned to 2024-01-01T00:00Z so leases, backoff and cron
  recurrence are driven explicitly instead of by wall-clock time
- A scheduler wired to that clock with an event recorder

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(scheduler, clock):
            job = scheduler.schedule("noop")
            clock.advance(seconds=5)
            ...
"""

import sys
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Ensure jobspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from jobspine.core.clock import ManualClock
from jobspine.core.connection import create_connection
from jobspine.scheduling import (
    ConcurrencyLimiter,
    EventNotifier,
    HandlerRegistry,
    JobStore,
    Scheduler,
)
from jobspine.scheduling.events import Event

T0 = datetime(2024, 1, 1, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        # Mark all tests without explicit markers as unit tests
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Clock pinned to 2024-01-01T00:00:00Z."""
    return ManualClock(T0)


@pytest.fixture
def conn():
    """In-memory SQLite connection with the jobspine schema."""
    connection = create_connection(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def store(conn, clock) -> JobStore:
    return JobStore(conn, clock=clock)


@pytest.fixture
def db_url(tmp_path) -> str:
    """File-backed database shared by several connections."""
    return f"sqlite:///{tmp_path / 'jobs.db'}"


# =============================================================================
# Scheduler Fixtures
# =============================================================================


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def limiter() -> ConcurrencyLimiter:
    return ConcurrencyLimiter()


@pytest.fixture
def notifier() -> Generator[EventNotifier, None, None]:
    n = EventNotifier()
    yield n
    n.close()


@pytest.fixture
def scheduler(store, registry, notifier, limiter, clock) -> Generator[Scheduler, None, None]:
    """Scheduler on the manual clock; drive it with ``run_pending()``."""
    s = Scheduler(
        store,
        registry,
        workers=2,
        poll_interval_ms=10,
        lease_ttl_ms=60_000,
        notifier=notifier,
        limiter=limiter,
        clock=clock,
        worker_prefix="test-worker",
    )
    yield s
    s.stop(graceful=False)


class EventRecorder:
    """Collects every event emitted by a notifier."""

    def __init__(self, notifier: EventNotifier):
        self.notifier = notifier
        self.events: list[Event] = []
        notifier.on("*", self.events.append)

    def types(self) -> list[str]:
        self.notifier.drain()
        return [e.event_type for e in self.events]

    def of(self, event_type: str) -> list[Event]:
        self.notifier.drain()
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def recorder(notifier) -> EventRecorder:
    return EventRecorder(notifier)
