"""Scheduler handle -- the single initialization point.

Request handlers need the one scheduler of the process.  Instead of a
module-level global, the application builds a :class:`SchedulerHandle`
at startup, initializes it once the scheduler exists, and hands it to
every component that needs it (FastAPI reads it from ``app.state``).
Using it before initialization is an explicit error.
"""

from __future__ import annotations

import threading

from jobspine.core.errors import SchedulerNotInitializedError
from jobspine.scheduling.service import Scheduler


class SchedulerHandle:
    """Holds the process's scheduler once it is initialized."""

    def __init__(self, scheduler: Scheduler | None = None) -> None:
        self._lock = threading.Lock()
        self._scheduler = scheduler

    def initialize(self, scheduler: Scheduler) -> Scheduler:
        with self._lock:
            if self._scheduler is not None and self._scheduler is not scheduler:
                raise SchedulerNotInitializedError(
                    "Scheduler handle is already initialized with another scheduler"
                )
            self._scheduler = scheduler
        return scheduler

    def get(self) -> Scheduler:
        """Return the scheduler.

        Raises:
            SchedulerNotInitializedError: before :meth:`initialize`
        """
        scheduler = self._scheduler
        if scheduler is None:
            raise SchedulerNotInitializedError("Scheduler has not been initialized")
        return scheduler

    @property
    def is_initialized(self) -> bool:
        return self._scheduler is not None

    def reset(self) -> Scheduler | None:
        """Detach and return the scheduler (shutdown and tests)."""
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        return scheduler


__all__ = ["SchedulerHandle"]
