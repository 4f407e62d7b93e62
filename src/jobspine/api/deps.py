"""
FastAPI dependency injection: settings and the scheduler handle.

Usage in routers::

    from jobspine.api.deps import SchedulerDep

    @router.get("/jobs/{job_id}")
    def get_job(scheduler: SchedulerDep, job_id: str):
        ...
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from jobspine.api.settings import JobSpineSettings
from jobspine.scheduling.context import SchedulerHandle
from jobspine.scheduling.service import Scheduler

# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> JobSpineSettings:
    """Cached settings: loaded once per process."""
    return JobSpineSettings()


# ── Scheduler (per-app handle) ───────────────────────────────────────────


def get_scheduler_handle(request: Request) -> SchedulerHandle:
    return request.app.state.scheduler_handle


def get_scheduler(
    handle: Annotated[SchedulerHandle, Depends(get_scheduler_handle)],
) -> Scheduler:
    """The app's scheduler; SchedulerNotInitializedError before startup."""
    return handle.get()


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[JobSpineSettings, Depends(get_settings)]
SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]
