"""Scheduler - the public face of the engine.

Manifesto:
    Request handlers, the CLI and tests all talk to one object.  The
    Scheduler validates input, persists through the store, owns the
    worker loops and the event notifier, and is the only place where the
    administrative transitions (retry, cancel) are decided.  Engine
    internals (storage hiccups, lease races) are handled inside; public
    operations raise only validation, not-found, conflict and transient
    storage errors.

Tags:
    jobspine, scheduling, orchestrator, service, worker-pool

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER ARCHITECTURE                                                       │
│                                                                               │
│   schedule() / update_job() / retry() / cancel() / get_jobs()                │
│            │                                                                  │
│            ▼                                                                  │
│   ┌─────────────────┐      ┌──────────────────────────────────────────────┐  │
│   │  JobStore       │◄─────│  WorkerLoop × workers  (daemon threads)      │  │
│   │  (SQLite)       │      │    claim ─► JobRunner.run ─► release         │  │
│   └─────────────────┘      └──────────────────┬───────────────────────────┘  │
│                                               │ after persist                 │
│                                               ▼                               │
│                                   EventNotifier (job:start/complete/fail/     │
│                                                  retry/cancel)                │
│                                                                               │
│   Lifecycle:                                                                  │
│   ├── start()                 start every worker loop                         │
│   ├── stop(graceful=True)     stop claiming; wait for in-flight handlers      │
│   │                           up to drain_timeout_ms (default 30 s)           │
│   └── run_pending()           synchronous drain (tests, ``worker --once``)   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from jobspine.core.clock import Clock, SystemClock
from jobspine.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from jobspine.core.models import (
    DEFAULT_PRIORITY,
    Job,
    JobCreate,
    JobQuery,
    JobStatus,
    RepeatSpec,
    RetryConfig,
)
from jobspine.core.timestamps import is_ulid
from jobspine.scheduling import events
from jobspine.scheduling.concurrency import ConcurrencyLimiter
from jobspine.scheduling.events import EventNotifier, Listener
from jobspine.scheduling.lease import DEFAULT_LEASE_TTL_MS, LeaseManager, default_worker_id
from jobspine.scheduling.registry import HandlerRegistry, JobHandler
from jobspine.scheduling.store import JobStore
from jobspine.scheduling.worker import JobRunner, WorkerLoop

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 3
DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_DRAIN_TIMEOUT_MS = 30_000

# Statuses a job may be force-requeued from
_REQUEUEABLE = (JobStatus.PENDING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class Scheduler:
    """Persistence-backed job scheduler with a pool of worker loops.

    Example:
        >>> scheduler = Scheduler(JobStore(create_connection(":memory:")), workers=2)
        >>> scheduler.register("send-email", send_email)
        >>> job = scheduler.schedule("send-email", {"to": "ops@example.com"}, priority=1)
        >>> scheduler.start()
        >>> ...
        >>> scheduler.stop()
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry | None = None,
        *,
        workers: int = DEFAULT_WORKERS,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        lease_ttl_ms: int = DEFAULT_LEASE_TTL_MS,
        drain_timeout_ms: int = DEFAULT_DRAIN_TIMEOUT_MS,
        lease_renew_interval_ms: int | None = None,
        notifier: EventNotifier | None = None,
        limiter: ConcurrencyLimiter | None = None,
        clock: Clock | None = None,
        worker_prefix: str | None = None,
    ) -> None:
        if workers < 1:
            raise ValidationError("workers must be >= 1", field="workers", value=workers)
        if poll_interval_ms < 0 or lease_ttl_ms < 1:
            raise ValidationError("poll interval and lease TTL must be positive", field="lease_ttl_ms")

        self.store = store
        self.registry = registry or HandlerRegistry()
        self.notifier = notifier or EventNotifier()
        self.limiter = limiter or ConcurrencyLimiter()
        self.clock: Clock = clock or store.clock or SystemClock()
        self.workers = workers
        self.poll_interval_ms = poll_interval_ms
        self.lease_ttl_ms = lease_ttl_ms
        self.drain_timeout_ms = drain_timeout_ms
        self.worker_prefix = worker_prefix or default_worker_id()

        self.registry.on_register(self.limiter.set_limit)
        self.runner = JobRunner(
            store,
            self.registry,
            self.notifier,
            self.limiter,
            clock=self.clock,
            lease_renew_interval_ms=lease_renew_interval_ms,
        )
        self._loops: list[WorkerLoop] = []
        self._sync_loop = self._make_loop("sync")
        self._state_lock = threading.Lock()
        self._running = False

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register(
        self,
        name: str,
        handler: JobHandler,
        description: str | None = None,
        concurrency: int | None = None,
    ) -> None:
        """Register the handler for jobs named *name*."""
        self.registry.register(name, handler, description=description, concurrency=concurrency)

    def on(self, pattern: str, listener: Listener) -> str:
        """Subscribe to engine events (``job:complete``, ``job:*``, ``*``)."""
        return self.notifier.on(pattern, listener)

    def off(self, subscription_id: str) -> bool:
        return self.notifier.off(subscription_id)

    # ------------------------------------------------------------------ #
    # Jobs
    # ------------------------------------------------------------------ #

    def schedule(
        self,
        name: str,
        data: dict[str, Any] | None = None,
        *,
        priority: int = DEFAULT_PRIORITY,
        concurrency: int | None = None,
        retry: RetryConfig | dict[str, Any] | None = None,
        repeat: RepeatSpec | dict[str, Any] | str | None = None,
        dedupe_key: str | None = None,
        run_at: Any = None,
    ) -> Job:
        """Persist a new pending job.

        Args:
            name: Handler name
            data: JSON payload handed to the handler
            priority: Lower runs first (default 5)
            concurrency: Max running jobs of this name (None = configured default)
            retry: ``{"max_attempts", "delay_ms", "backoff", ...}``
            repeat: Cron string or ``{"cron", "timezone"}``
            dedupe_key: Reject while a pending/running job of this name uses it
            run_at: First run time (default: now, or the first cron occurrence)

        Raises:
            ValidationError: invalid input (including DuplicateJobError, CronParseError)
        """
        if isinstance(repeat, str):
            repeat = {"cron": repeat}
        job = self.store.insert(
            JobCreate(
                name=name,
                data=data,
                priority=priority,
                concurrency=concurrency,
                retry=RetryConfig.from_dict(retry),
                repeat=RepeatSpec.from_dict(repeat),
                dedupe_key=dedupe_key,
                run_at=run_at,
            )
        )
        logger.info(
            "Scheduled job %s (%s) priority=%d next_run_at=%s",
            job.id,
            job.name,
            job.priority,
            job.next_run_at.isoformat(),
        )
        return job

    def get_job(self, job_id: str) -> Job:
        """Fetch a job.

        Raises:
            ValidationError: malformed id
            NotFoundError: unknown id
        """
        self._check_id(job_id)
        job = self.store.find_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}").with_context(job_id=job_id)
        return job

    def get_jobs(self, query: JobQuery | None = None) -> list[Job]:
        return self.store.query(query or JobQuery())

    def stats(self, name: str | None = None) -> dict[str, int]:
        """Job counts per status (plus ``total``)."""
        return self.store.count_by_status(name)

    def update_job(self, job_id: str, **fields: Any) -> Job:
        """Partially update data, repeat, retry, priority, concurrency,
        dedupe_key or next_run_at (``run_at`` is accepted as an alias)."""
        self._check_id(job_id)
        if "run_at" in fields:
            fields["next_run_at"] = fields.pop("run_at")
        if isinstance(fields.get("repeat"), str):
            fields["repeat"] = {"cron": fields["repeat"]}
        return self.store.update(job_id, fields)

    def retry(self, job_id: str) -> Job:
        """Requeue a job to run now with a fresh attempt budget.

        Raises:
            InvalidTransitionError: the job is currently running
        """
        self._check_id(job_id)
        job = self.store.transition(
            job_id,
            _REQUEUEABLE,
            {
                "status": JobStatus.PENDING,
                "next_run_at": self.clock.now(),
                "attempts": 0,
                "lock_owner": None,
                "lock_expires_at": None,
                "finished_at": None,
                "last_error": None,
            },
        )
        if job is None:
            current = self.get_job(job_id)
            raise InvalidTransitionError(
                f"Cannot retry job {job_id} while it is {current.status.value}"
            ).with_context(job_id=job_id, job_name=current.name)
        logger.info("Requeued job %s (%s)", job.id, job.name)
        return job

    def cancel(self, job_id: str) -> Job:
        """Cancel a pending or running job.

        Cancelling a cancelled job is a no-op.  A running handler is not
        interrupted; its late outcome is discarded because the lease is
        cleared here.

        Raises:
            InvalidTransitionError: the job already completed or failed
        """
        self._check_id(job_id)
        job = self.store.transition(
            job_id,
            (JobStatus.PENDING, JobStatus.RUNNING),
            {
                "status": JobStatus.CANCELLED,
                "lock_owner": None,
                "lock_expires_at": None,
                "finished_at": self.clock.now(),
            },
        )
        if job is None:
            current = self.get_job(job_id)
            if current.status == JobStatus.CANCELLED:
                return current
            raise InvalidTransitionError(
                f"Cannot cancel job {job_id}: already {current.status.value}"
            ).with_context(job_id=job_id, job_name=current.name)

        logger.info("Cancelled job %s (%s)", job.id, job.name)
        self.notifier.emit(events.JOB_CANCEL, job=job.to_dict(), reason="requested")
        return job

    def delete_job(self, job_id: str) -> bool:
        """Hard-delete a job.

        Raises:
            NotFoundError: unknown id
        """
        self._check_id(job_id)
        if not self.store.delete(job_id):
            raise NotFoundError(f"Job not found: {job_id}").with_context(job_id=job_id)
        logger.info("Deleted job %s", job_id)
        return True

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start every worker loop. Calling start twice is a no-op."""
        with self._state_lock:
            if self._running:
                return
            self._loops = [self._make_loop(str(i + 1)) for i in range(self.workers)]
            for loop in self._loops:
                loop.start()
            self._running = True
        logger.info(
            "Scheduler started: %d worker(s), poll every %dms, lease %dms",
            self.workers,
            self.poll_interval_ms,
            self.lease_ttl_ms,
        )

    def stop(self, graceful: bool = True) -> bool:
        """Stop claiming new jobs.

        With ``graceful=True`` waits for in-flight handlers, bounded by
        ``drain_timeout_ms``.  Returns True if every loop exited.
        """
        with self._state_lock:
            if not self._running:
                return True
            self._running = False
            loops = list(self._loops)

        for loop in loops:
            loop.stop()
        if not graceful:
            logger.info("Scheduler stopped without draining")
            return False

        deadline = time.monotonic() + self.drain_timeout_ms / 1000.0
        drained = True
        for loop in loops:
            remaining = max(0.0, deadline - time.monotonic())
            drained = loop.join(remaining) and drained
        if not drained:
            logger.warning(
                "Scheduler drain timed out after %dms; in-flight jobs will be reclaimed after lease expiry",
                self.drain_timeout_ms,
            )
        self.notifier.drain(timeout=max(0.1, deadline - time.monotonic()))
        logger.info("Scheduler stopped")
        return drained

    def close(self) -> None:
        """Stop workers and release the notifier thread."""
        self.stop(graceful=True)
        self.notifier.close()

    def run_pending(self, max_jobs: int | None = None) -> int:
        """Run due jobs on the calling thread until none is eligible.

        Returns:
            Number of jobs claimed and run
        """
        self.runner.reap()
        count = 0
        while max_jobs is None or count < max_jobs:
            if not self._sync_loop.run_once():
                break
            count += 1
        return count

    def health(self) -> dict[str, Any]:
        loops = list(self._loops)
        return {
            "running": self._running,
            "workers": self.workers,
            "workers_alive": sum(1 for loop in loops if loop.is_alive),
            "poll_interval_ms": self.poll_interval_ms,
            "lease_ttl_ms": self.lease_ttl_ms,
            "in_flight": self.limiter.in_flight(),
            "handlers": self.registry.names(),
            "worker_stats": {loop.worker_id: loop.stats.to_dict() for loop in loops},
        }

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _make_loop(self, suffix: str) -> WorkerLoop:
        leases = LeaseManager(
            self.store,
            worker_id=f"{self.worker_prefix}-{suffix}",
            lease_ttl_ms=self.lease_ttl_ms,
            limiter=self.limiter,
        )
        return WorkerLoop(self.runner, leases, poll_interval=self.poll_interval_ms / 1000.0)

    @staticmethod
    def _check_id(job_id: str) -> None:
        if not isinstance(job_id, str) or not is_ulid(job_id):
            raise ValidationError(f"Invalid job id: {job_id!r}", field="id", value=job_id)


__all__ = [
    "DEFAULT_DRAIN_TIMEOUT_MS",
    "DEFAULT_POLL_INTERVAL_MS",
    "DEFAULT_WORKERS",
    "Scheduler",
]
