"""
Jobs router: administrative view and control of jobs.

GET    /jobs
GET    /jobs/stats
GET    /jobs/{job_id}
PUT    /jobs/{job_id}
DELETE /jobs/{job_id}
POST   /jobs/{job_id}/retry
POST   /jobs/{job_id}/cancel
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Path, Query

from jobspine.api.deps import SchedulerDep
from jobspine.api.schemas.common import PagedResponse, PageMeta, SuccessResponse
from jobspine.api.schemas.jobs import DeleteResult, JobSchema, JobStatsSchema, UpdateJobBody
from jobspine.core.errors import ValidationError
from jobspine.core.models import DEFAULT_QUERY_LIMIT, JobQuery, JobStatus
from jobspine.scheduling.store import MAX_QUERY_LIMIT

router = APIRouter(prefix="/jobs")


def _elapsed(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _parse_statuses(raw: str | None) -> list[JobStatus]:
    if not raw:
        return []
    try:
        return [JobStatus(part.strip()) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise ValidationError(f"Unknown status in {raw!r}", field="status", value=raw) from e


@router.get("", response_model=PagedResponse[JobSchema])
def list_jobs(
    scheduler: SchedulerDep,
    status: str | None = Query(None, description="Status or comma-separated statuses"),
    name: str | None = Query(None, description="Job name"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    skip: int = Query(0, ge=0),
    sort: str = Query("updatedAt", description="Sort field (camelCase or snake_case)"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """List jobs, filtered by status/name, sorted and paginated.

    Example:
        GET /jobs?status=pending,running&sort=nextRunAt&order=asc&limit=20
    """
    started = time.perf_counter()
    statuses = _parse_statuses(status)
    jobs = scheduler.get_jobs(
        JobQuery(status=statuses or None, name=name, sort=sort, order=order, limit=limit, skip=skip)
    )

    counts = scheduler.stats(name)
    total = sum(counts[s.value] for s in statuses) if statuses else counts["total"]
    return PagedResponse(
        data=[JobSchema.from_job(job) for job in jobs],
        page=PageMeta.from_result(total=total, limit=limit, offset=skip),
        elapsed_ms=_elapsed(started),
    )


@router.get("/stats", response_model=SuccessResponse[JobStatsSchema])
def job_stats(scheduler: SchedulerDep, name: str | None = Query(None)):
    """Counts of jobs per status."""
    started = time.perf_counter()
    return SuccessResponse(data=JobStatsSchema(**scheduler.stats(name)), elapsed_ms=_elapsed(started))


@router.get("/{job_id}", response_model=SuccessResponse[JobSchema])
def get_job(scheduler: SchedulerDep, job_id: str = Path(..., description="Job ID")):
    """Get one job.

    Raises:
        400 VALIDATION_FAILED: malformed id
        404 NOT_FOUND: unknown id
    """
    started = time.perf_counter()
    job = scheduler.get_job(job_id)
    return SuccessResponse(data=JobSchema.from_job(job), elapsed_ms=_elapsed(started))


@router.put("/{job_id}", response_model=SuccessResponse[JobSchema])
def update_job(
    scheduler: SchedulerDep,
    body: UpdateJobBody,
    job_id: str = Path(..., description="Job ID"),
):
    """Partially update data, repeat, retry, priority, concurrency,
    dedupe_key or run_at."""
    started = time.perf_counter()
    job = scheduler.update_job(job_id, **body.changes())
    return SuccessResponse(data=JobSchema.from_job(job), elapsed_ms=_elapsed(started))


@router.delete("/{job_id}", response_model=SuccessResponse[DeleteResult])
def delete_job(scheduler: SchedulerDep, job_id: str = Path(..., description="Job ID")):
    """Hard-delete a job."""
    started = time.perf_counter()
    scheduler.delete_job(job_id)
    return SuccessResponse(data=DeleteResult(id=job_id), elapsed_ms=_elapsed(started))


@router.post("/{job_id}/retry", response_model=SuccessResponse[JobSchema])
def retry_job(scheduler: SchedulerDep, job_id: str = Path(..., description="Job ID")):
    """Requeue a job to run now with a fresh attempt budget.

    Raises:
        409 CONFLICT: the job is running
    """
    started = time.perf_counter()
    job = scheduler.retry(job_id)
    return SuccessResponse(data=JobSchema.from_job(job), elapsed_ms=_elapsed(started))


@router.post("/{job_id}/cancel", response_model=SuccessResponse[JobSchema])
def cancel_job(scheduler: SchedulerDep, job_id: str = Path(..., description="Job ID")):
    """Cancel a pending or running job (idempotent).

    Raises:
        409 CONFLICT: the job already completed or failed
    """
    started = time.perf_counter()
    job = scheduler.cancel(job_id)
    return SuccessResponse(data=JobSchema.from_job(job), elapsed_ms=_elapsed(started))
