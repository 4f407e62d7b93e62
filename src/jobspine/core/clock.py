"""
Injectable clock.

The engine never calls ``datetime.now()`` or ``time.sleep()`` directly:
everything that reads the time or waits goes through a :class:`Clock`.
Production uses :class:`SystemClock`; tests drive :class:`ManualClock`
forward explicitly, so lease expiry, backoff and cron recurrence are
exercised without waiting on wall-clock time.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from jobspine.core.timestamps import ensure_utc, utc_now


@runtime_checkable
class Clock(Protocol):
    """Source of the current time and of delays."""

    def now(self) -> datetime:
        """Current aware UTC datetime."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for *seconds* (or pretend to)."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return utc_now()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class ManualClock:
    """Deterministic clock for tests.

    ``sleep()`` advances the clock instead of blocking.

    Example:
        >>> clock = ManualClock(datetime(2024, 1, 1, 23, tzinfo=UTC))
        >>> _ = clock.advance(seconds=3600)
        >>> clock.now().hour
        0
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start else utc_now()
        self._lock = threading.Lock()
        self.slept: list[float] = []

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> None:
        with self._lock:
            self._now = ensure_utc(when)

    def advance(self, seconds: float = 0.0, *, ms: float = 0.0) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds, milliseconds=ms)
            return self._now

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.advance(seconds)
