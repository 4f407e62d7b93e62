"""Worker loop -- polls the store, claims jobs and runs their handlers.

Each :class:`WorkerLoop` is one independent poll cycle on its own thread:
claim → execute → finalize, and wait ``poll_interval`` only when nothing
was claimed.  Several loops share one :class:`JobRunner`, which owns the
outcome rules (success, repeat, retry, terminal failure) so that the
threaded loops and the synchronous ``Scheduler.run_pending()`` drain
behave identically.

Usage (programmatic)::

    runner = JobRunner(store, registry, notifier, limiter)
    loop = WorkerLoop(runner, LeaseManager(store, "worker-1"), poll_interval=1.0)
    loop.start()
    ...
    loop.stop()
    loop.join(timeout=30)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from jobspine.core.clock import Clock, SystemClock
from jobspine.core.errors import StopRepeating, UnregisteredJobError, error_record
from jobspine.core.logging import LogContext
from jobspine.core.models import Job, JobStatus
from jobspine.core.timestamps import to_iso8601
from jobspine.scheduling import events
from jobspine.scheduling.concurrency import ConcurrencyLimiter
from jobspine.scheduling.cron import CronEvaluator
from jobspine.scheduling.events import EventNotifier
from jobspine.scheduling.lease import LeaseManager
from jobspine.scheduling.registry import HandlerRegistry, invoke
from jobspine.scheduling.retry import policy_from_config
from jobspine.scheduling.store import JobStore

logger = logging.getLogger(__name__)

# Every Nth poll cycle also fails expired leases that have no attempts left
REAP_EVERY_CYCLES = 6


@dataclass
class WorkerStats:
    """Aggregate statistics for a worker loop."""

    total_processed: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_retried: int = 0
    total_cancelled: int = 0
    total_discarded: int = 0
    poll_errors: int = 0
    last_poll_at: datetime | None = None
    current_job_id: str | None = None

    def record(self, outcome: str) -> None:
        self.total_processed += 1
        if outcome == "completed" or outcome == "repeated":
            self.total_completed += 1
        elif outcome == "failed":
            self.total_failed += 1
        elif outcome == "retried":
            self.total_retried += 1
        elif outcome == "cancelled":
            self.total_cancelled += 1
        elif outcome == "discarded":
            self.total_discarded += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "total_completed": self.total_completed,
            "total_failed": self.total_failed,
            "total_retried": self.total_retried,
            "total_cancelled": self.total_cancelled,
            "total_discarded": self.total_discarded,
            "poll_errors": self.poll_errors,
            "last_poll_at": to_iso8601(self.last_poll_at),
            "current_job_id": self.current_job_id,
        }


class JobRunner:
    """Executes one claimed job and persists its outcome.

    Outcomes:
        - success, one-shot    → ``completed``                 (``job:complete``)
        - success, repeating   → ``pending`` at next occurrence (``job:complete``)
        - ``StopRepeating``    → ``cancelled``                 (``job:cancel``)
        - failure, attempts left → ``pending`` after backoff   (``job:fail`` + ``job:retry``)
        - failure, exhausted   → ``failed``, or the next occurrence for a
          repeating job                                        (``job:fail``)
        - unknown job name     → ``failed`` immediately        (``job:fail``)

    Events are emitted only after the outcome is persisted.  When the
    lease was lost meanwhile the outcome is discarded and nothing is
    emitted.
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        notifier: EventNotifier,
        limiter: ConcurrencyLimiter,
        *,
        cron: CronEvaluator | None = None,
        clock: Clock | None = None,
        lease_renew_interval_ms: int | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.notifier = notifier
        self.limiter = limiter
        self.cron = cron or store.cron
        self.clock: Clock = clock or SystemClock()
        self.lease_renew_interval_ms = lease_renew_interval_ms

    def run(self, job: Job, leases: LeaseManager) -> str:
        """Run *job* (already claimed by *leases*) and return the outcome name."""
        self.notifier.emit(events.JOB_START, job=job.to_dict(), worker_id=leases.worker_id)
        handler = self.registry.resolve(job.name)
        self.limiter.acquire(job.name)
        try:
            with LogContext(job_id=job.id, job_name=job.name, worker_id=leases.worker_id):
                logger.info(
                    "Worker %s running job %s (%s), attempt %d/%d",
                    leases.worker_id,
                    job.id,
                    job.name,
                    job.attempts,
                    job.max_attempts,
                )
                try:
                    with leases.heartbeat(job.id, self.lease_renew_interval_ms):
                        result = invoke(handler, job)
                except StopRepeating as stop:
                    return self._stopped(job, leases, stop)
                except Exception as e:
                    return self._failed(job, leases, e)
                return self._succeeded(job, leases, result)
        finally:
            self.limiter.release(job.name)

    def reap(self) -> list[Job]:
        """Settle expired leases with no attempts left (repeating jobs requeue)."""
        failed = self.store.fail_exhausted_leases()
        for job in failed:
            self.notifier.emit(events.JOB_FAIL, job=job.to_dict(), error=job.last_error, final=True)
        return failed

    # -- outcomes ----------------------------------------------------------

    def _succeeded(self, job: Job, leases: LeaseManager, result: Any) -> str:
        now = self.clock.now()
        if job.is_repeating:
            updated = leases.release(
                job.id,
                JobStatus.PENDING,
                attempts=0,
                next_run_at=self.cron.next_for(job.repeat, now),
                result=result,
                last_error=None,
            )
            outcome = "repeated"
        else:
            updated = leases.release(
                job.id,
                JobStatus.COMPLETED,
                finished_at=now,
                result=result,
                last_error=None,
            )
            outcome = "completed"
        if updated is None:
            return "discarded"

        logger.info("Job %s (%s) %s", job.id, job.name, outcome)
        self.notifier.emit(events.JOB_COMPLETE, job=updated.to_dict(), result=result)
        return outcome

    def _stopped(self, job: Job, leases: LeaseManager, stop: StopRepeating) -> str:
        updated = leases.release(
            job.id,
            JobStatus.CANCELLED,
            finished_at=self.clock.now(),
            result=stop.result,
        )
        if updated is None:
            return "discarded"
        logger.info("Job %s (%s) stopped repeating", job.id, job.name)
        self.notifier.emit(events.JOB_CANCEL, job=updated.to_dict(), reason="stopped")
        return "cancelled"

    def _failed(self, job: Job, leases: LeaseManager, error: Exception) -> str:
        now = self.clock.now()
        record = error_record(error, job.attempts, to_iso8601(now))
        policy = policy_from_config(job.retry)
        unregistered = isinstance(error, UnregisteredJobError)

        if not unregistered and policy.should_retry(job.attempts, job.max_attempts):
            delay = policy.next_delay(job.attempts)
            updated = leases.release(
                job.id,
                JobStatus.PENDING,
                next_run_at=now + timedelta(seconds=delay),
                last_error=record,
            )
            if updated is None:
                return "discarded"
            logger.warning(
                "Job %s (%s) failed on attempt %d/%d, retrying in %.1fs: %s",
                job.id,
                job.name,
                job.attempts,
                job.max_attempts,
                delay,
                error,
            )
            self.notifier.emit(events.JOB_FAIL, job=updated.to_dict(), error=record, final=False)
            self.notifier.emit(events.JOB_RETRY, job=updated.to_dict(), error=record, delay_seconds=delay)
            return "retried"

        if job.is_repeating and not unregistered:
            # the series survives a failed occurrence
            updated = leases.release(
                job.id,
                JobStatus.PENDING,
                attempts=0,
                next_run_at=self.cron.next_for(job.repeat, now),
                last_error=record,
            )
            outcome = "retried"
        else:
            updated = leases.release(
                job.id,
                JobStatus.FAILED,
                finished_at=now,
                last_error=record,
            )
            outcome = "failed"
        if updated is None:
            return "discarded"

        if unregistered:
            logger.error("Job %s failed: %s", job.id, error)
        else:
            logger.error(
                "Job %s (%s) failed after %d attempt(s): %s",
                job.id,
                job.name,
                job.attempts,
                error,
                exc_info=error,
            )
        self.notifier.emit(events.JOB_FAIL, job=updated.to_dict(), error=record, final=True)
        return outcome


class WorkerLoop:
    """One poll → claim → execute → finalize cycle on a daemon thread.

    Thread-safety:
        A loop runs one job at a time on its own thread; parallelism comes
        from running several loops.  The store serializes access to the
        shared connection.
    """

    def __init__(
        self,
        runner: JobRunner,
        leases: LeaseManager,
        poll_interval: float = 1.0,
    ) -> None:
        """
        Args:
            runner: Executes claimed jobs and persists outcomes.
            leases: Lease manager carrying this loop's worker id.
            poll_interval: Seconds to wait after a poll that claimed nothing.
        """
        self.runner = runner
        self.leases = leases
        self.poll_interval = poll_interval
        self.stats = WorkerStats()
        self._shutdown = threading.Event()
        self._thread: threading.Thread | None = None
        self._cycles = 0

    @property
    def worker_id(self) -> str:
        return self.leases.worker_id

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> threading.Thread:
        """Start the loop in a daemon thread. Returns the thread."""
        if self.is_alive:
            return self._thread  # type: ignore[return-value]
        self._shutdown.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"{self.worker_id}-loop",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Stop claiming new jobs; the job in progress runs to completion."""
        self._shutdown.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop thread. True if it has exited."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    def run_once(self) -> bool:
        """Claim and run at most one job. True if a job was claimed."""
        job = self.leases.claim()
        self.stats.last_poll_at = self.runner.clock.now()
        if job is None:
            return False

        self.stats.current_job_id = job.id
        try:
            outcome = self.runner.run(job, self.leases)
        finally:
            self.stats.current_job_id = None
        self.stats.record(outcome)
        return True

    def _run_loop(self) -> None:
        logger.info(
            "Worker %s starting, polling every %.3fs",
            self.worker_id,
            self.poll_interval,
        )
        while not self._shutdown.is_set():
            self._cycles += 1
            claimed = False
            try:
                if self._cycles % REAP_EVERY_CYCLES == 0:
                    self.runner.reap()
                claimed = self.run_once()
            except Exception:
                self.stats.poll_errors += 1
                logger.exception("Worker %s poll error", self.worker_id)

            if not claimed:
                self._shutdown.wait(self.poll_interval)
        logger.info("Worker %s stopped", self.worker_id)


__all__ = ["JobRunner", "WorkerLoop", "WorkerStats", "REAP_EVERY_CYCLES"]
