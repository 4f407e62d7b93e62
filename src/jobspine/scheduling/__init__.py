"""Scheduling engine for jobspine.

Manifesto:
    Many workers, possibly in many processes, pull jobs from one store.
    Correctness comes from the store, not from memory: an atomic claim
    that takes a lease, owner-guarded finalization, per-name concurrency
    checked inside the claim, and lease expiry as the only automatic
    recovery mechanism.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOBSPINE SCHEDULER                                                           │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from jobspine.scheduling import create_scheduler                   │   │
│  │                                                                      │   │
│  │   scheduler = create_scheduler("sqlite:///jobspine.db", workers=3)  │   │
│  │                                                                      │   │
│  │   @scheduler.registry.handler("send-email")                         │   │
│  │   def send_email(job):                                               │   │
│  │       return {"sent": True}                                          │   │
│  │                                                                      │   │
│  │   scheduler.schedule("send-email", {"to": "ops@example.com"})       │   │
│  │   scheduler.start()                                                  │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Modules:                                                                     │
│  - store.py        JobStore: CRUD + atomic claim (SQLite)                    │
│  - lease.py        LeaseManager / LeaseHeartbeat                              │
│  - concurrency.py  ConcurrencyLimiter (claim predicate)                       │
│  - retry.py        FixedDelay / ExponentialBackoff                            │
│  - cron.py         CronEvaluator (croniter + zoneinfo)                        │
│  - registry.py     HandlerRegistry                                            │
│  - events.py       EventNotifier                                              │
│  - worker.py       WorkerLoop / JobRunner                                     │
│  - service.py      Scheduler                                                  │
│  - context.py      SchedulerHandle                                            │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Constructing scheduler components individually
    ✅ ``create_scheduler(database_url, ...)`` factory function
    ❌ Applying a worker's outcome after its lease was reclaimed
    ✅ ``LeaseManager.release()`` is owner-guarded and logs the conflict

Tags:
    jobspine, scheduling, leases, cron, worker-pool

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from typing import Any

from jobspine.core.clock import Clock, SystemClock
from jobspine.core.connection import create_connection

from .concurrency import ConcurrencyLimiter
from .context import SchedulerHandle
from .cron import CronEvaluator
from .events import Event, EventNotifier
from .lease import LeaseHeartbeat, LeaseManager
from .registry import HandlerRegistry
from .retry import ExponentialBackoff, FixedDelay, NoRetry, RetryPolicy, policy_from_config
from .service import Scheduler
from .store import JobStore
from .worker import JobRunner, WorkerLoop, WorkerStats


def create_scheduler(
    database_url: str = ":memory:",
    *,
    registry: HandlerRegistry | None = None,
    clock: Clock | None = None,
    concurrency: dict[str, int] | None = None,
    **options: Any,
) -> Scheduler:
    """Build a fully wired scheduler.

    Args:
        database_url: ``sqlite:///path`` or ``:memory:``
        registry: Handler registry (a new one by default)
        clock: Time source (SystemClock by default)
        concurrency: Default per-name running limits
        **options: Passed to :class:`Scheduler` (workers, poll_interval_ms, ...)
    """
    clock = clock or SystemClock()
    store = JobStore(create_connection(database_url), clock=clock)
    return Scheduler(
        store,
        registry or HandlerRegistry(),
        limiter=ConcurrencyLimiter(concurrency),
        clock=clock,
        **options,
    )


__all__ = [
    "ConcurrencyLimiter",
    "CronEvaluator",
    "Event",
    "EventNotifier",
    "ExponentialBackoff",
    "FixedDelay",
    "HandlerRegistry",
    "JobRunner",
    "JobStore",
    "LeaseHeartbeat",
    "LeaseManager",
    "NoRetry",
    "RetryPolicy",
    "Scheduler",
    "SchedulerHandle",
    "WorkerLoop",
    "WorkerStats",
    "create_scheduler",
    "policy_from_config",
]
