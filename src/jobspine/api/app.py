"""
FastAPI application factory.

``create_app()`` wires CORS, routers, error handlers, and the lifespan
that owns the scheduler into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root: the connection,
    the scheduler, the job bodies and the cleanup cron are all wired
    here, and the scheduler is reachable only through the per-app
    :class:`SchedulerHandle`, never through module globals.

Tags:
    jobspine, api, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from jobspine.api.deps import get_settings
from jobspine.api.middleware.errors import (
    jobspine_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from jobspine.api.settings import JobSpineSettings
from jobspine.core.clock import Clock, SystemClock
from jobspine.core.connection import create_connection
from jobspine.core.errors import DuplicateJobError, JobSpineError
from jobspine.core.logging import configure_logging, get_logger
from jobspine.jobs import CLEANUP_DEDUPE_KEY, CRON_CLEANUP, register_demo_jobs
from jobspine.scheduling.context import SchedulerHandle
from jobspine.scheduling.registry import HandlerRegistry
from jobspine.scheduling.service import Scheduler
from jobspine.scheduling.store import JobStore

log = get_logger("jobspine.api")


def build_scheduler(settings: JobSpineSettings, clock: Clock | None = None) -> Scheduler:
    """Open the store and build a scheduler configured by *settings*."""
    clock = clock or SystemClock()
    store = JobStore(create_connection(settings.database_url), clock=clock)
    registry = HandlerRegistry()
    if settings.register_demo_jobs:
        register_demo_jobs(registry, store, clock=clock)
    return Scheduler(
        store,
        registry,
        workers=settings.workers,
        poll_interval_ms=settings.poll_interval_ms,
        lease_ttl_ms=settings.lock_timeout_ms,
        drain_timeout_ms=settings.drain_timeout_ms,
        lease_renew_interval_ms=settings.lease_renew_interval_ms,
        clock=clock,
    )


def register_cleanup_cron(scheduler: Scheduler, settings: JobSpineSettings) -> None:
    """Schedule the daily cleanup job unless one is already pending."""
    try:
        job = scheduler.schedule(
            CRON_CLEANUP,
            {"type": "daily-cleanup"},
            repeat={"cron": settings.cleanup_cron, "timezone": settings.cleanup_timezone},
            dedupe_key=CLEANUP_DEDUPE_KEY,
        )
        log.info("cleanup_cron_registered", job_id=job.id, next_run_at=job.next_run_at.isoformat())
    except DuplicateJobError:
        log.info("cleanup_cron_already_registered")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build/start the scheduler, stop it on shutdown."""
    settings: JobSpineSettings = app.state.settings
    handle: SchedulerHandle = app.state.scheduler_handle

    scheduler = app.state.scheduler
    owns_scheduler = scheduler is None
    if owns_scheduler:
        scheduler = build_scheduler(settings)
    handle.initialize(scheduler)
    log.info("jobspine API starting", version=app.version, handlers=scheduler.registry.names())

    if settings.start_scheduler:
        scheduler.start()
    if settings.register_cleanup_cron:
        register_cleanup_cron(scheduler, settings)

    try:
        yield
    finally:
        log.info("jobspine API shutting down")
        scheduler.stop(graceful=True)
        handle.reset()
        if owns_scheduler:
            scheduler.notifier.close()
            scheduler.store.conn.close()


def create_app(
    *,
    settings: JobSpineSettings | None = None,
    scheduler: Scheduler | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : JobSpineSettings | None
        Override settings (useful for testing).  When ``None`` the cached
        singleton from :func:`get_settings` is used.
    scheduler : Scheduler | None
        Use this scheduler instead of building one from *settings*.  The
        caller keeps ownership of its connection and notifier.
    """

    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.scheduler = scheduler
    app.state.scheduler_handle = SchedulerHandle()

    # Override DI so endpoints use the provided settings
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(JobSpineError, jobspine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from jobspine.api.routers import health, jobs, triggers

    prefix = settings.api_prefix

    # Health at root level (no prefix) for container healthchecks
    app.include_router(health.router, tags=["health"])
    app.include_router(jobs.router, prefix=prefix, tags=["jobs"])
    app.include_router(triggers.router, prefix=prefix, tags=["triggers"])

    return app
