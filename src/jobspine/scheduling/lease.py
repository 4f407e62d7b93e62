"""Lease manager: claim, renew and release job leases.

Manifesto:
    A worker owns a job only while its lease is live.  If the worker dies
    the lease expires and another worker may reclaim the job, so every
    write made on behalf of an attempt is conditional on still owning the
    lease.  A stale worker's renew or release is a silent no-op: its
    outcome is discarded and logged, never applied over the new owner's.

Tags:
    jobspine, scheduling, leases, TTL, ownership

Doc-Types:
    api-reference


    Lease lifecycle::

        claim()  ── status=running, lock_owner=W, lock_expires_at=now+ttl
          │
          ├── renew()   (optional heartbeat while the handler runs)
          │
          └── release(status, ...)  ── lock fields cleared, outcome written
                                       only where lock_owner == W
"""

from __future__ import annotations

import logging
import os
import socket
import threading
from datetime import timedelta
from typing import Any

from jobspine.core.errors import LockConflict
from jobspine.core.models import Job, JobStatus
from jobspine.core.timestamps import generate_ulid
from jobspine.scheduling.concurrency import ConcurrencyLimiter
from jobspine.scheduling.store import JobStore

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TTL_MS = 60_000


def default_worker_id() -> str:
    """``host:pid:suffix``, unique per worker."""
    return f"{socket.gethostname()}:{os.getpid()}:{generate_ulid()[-6:]}"


class LeaseManager:
    """Claims and finalizes jobs on behalf of one worker.

    Example:
        >>> leases = LeaseManager(store, worker_id="worker-1", lease_ttl_ms=30_000)
        >>> job = leases.claim()
        >>> if job:
        ...     leases.release(job.id, JobStatus.COMPLETED, result={"ok": True})
    """

    def __init__(
        self,
        store: JobStore,
        worker_id: str | None = None,
        lease_ttl_ms: int = DEFAULT_LEASE_TTL_MS,
        limiter: ConcurrencyLimiter | None = None,
    ) -> None:
        """Initialize lease manager.

        Args:
            store: Job store
            worker_id: Lock owner written on claimed jobs.
                       Auto-generated if not provided.
            lease_ttl_ms: Lease duration
            limiter: Concurrency limits applied at claim time
        """
        self.store = store
        self.worker_id = worker_id or default_worker_id()
        self.lease_ttl = timedelta(milliseconds=lease_ttl_ms)
        self.limiter = limiter or ConcurrencyLimiter()

    def claim(self) -> Job | None:
        """Take the lease of the next eligible job, if any."""
        return self.store.claim(self.worker_id, self.lease_ttl, self.limiter)

    def renew(self, job_id: str) -> bool:
        """Extend the lease. False if this worker no longer owns it."""
        renewed = self.store.renew(job_id, self.worker_id, self.lease_ttl)
        if not renewed:
            logger.debug("Lease renew skipped for job %s: not owned by %s", job_id, self.worker_id)
        return renewed

    def release(self, job_id: str, status: JobStatus, **fields: Any) -> Job | None:
        """Clear the lease and write the final state of the attempt.

        Returns the persisted job, or None when ownership was lost (the
        lease expired and the job was reclaimed or cancelled meanwhile).
        """
        values = {
            "status": status,
            "lock_owner": None,
            "lock_expires_at": None,
            **fields,
        }
        job = self.store.finalize(job_id, self.worker_id, values)
        if job is None:
            conflict = LockConflict(
                f"Discarding outcome '{JobStatus(status).value}' of job {job_id}: lease no longer held"
            ).with_context(job_id=job_id, worker_id=self.worker_id)
            logger.warning("%s", conflict.message, extra={"error": conflict.to_dict()})
        return job

    def heartbeat(self, job_id: str, interval_ms: int | None) -> LeaseHeartbeat:
        return LeaseHeartbeat(self, job_id, interval_ms)


class LeaseHeartbeat:
    """Renews a lease on a daemon thread while a handler runs.

    A no-op when ``interval_ms`` is None.  Stops renewing as soon as a
    renew fails (ownership lost).

    Usage::

        with leases.heartbeat(job.id, 10_000):
            handler(job)
    """

    def __init__(self, leases: LeaseManager, job_id: str, interval_ms: int | None) -> None:
        self.leases = leases
        self.job_id = job_id
        self.interval = interval_ms / 1000.0 if interval_ms else None
        self.renewals = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> LeaseHeartbeat:
        if self.interval:
            self._thread = threading.Thread(
                target=self._run,
                name=f"lease-heartbeat-{self.job_id}",
                daemon=True,
            )
            self._thread.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                if not self.leases.renew(self.job_id):
                    return
                self.renewals += 1
            except Exception:
                logger.exception("Lease renew failed for job %s", self.job_id)


__all__ = ["DEFAULT_LEASE_TTL_MS", "LeaseHeartbeat", "LeaseManager", "default_worker_id"]
