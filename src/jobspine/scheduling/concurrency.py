"""Per-name concurrency limits.

WHY
───
Some job types must not run more than N at a time across the whole
cluster (report generation is CPU heavy, a mail relay is rate limited).
The limit is enforced inside the claim statement itself: a candidate is
only claimable while fewer than ``limit`` jobs of its name hold a live
lease.  Because the claim runs in one ``BEGIN IMMEDIATE`` transaction,
two workers can never both take the last slot.

ARCHITECTURE
────────────
::

    ConcurrencyLimiter(defaults)
      ├── .set_limit(name, limit)      ─ configured default for a name
      ├── .limit_for(name, job_limit)  ─ effective limit (job value wins)
      ├── .claim_predicate(now)        ─ SQL fragment used by JobStore.claim
      ├── .admit(store, name, limit)   ─ store-backed check
      └── .acquire / .release          ─ advisory in-process counters

    A job's own ``concurrency`` overrides the configured default for its
    name.  No limit at all means unbounded.

Example::

    limiter = ConcurrencyLimiter({"generate-report": 2})
    job = store.claim("worker-1", lease_ttl, limiter)
"""

from __future__ import annotations

import threading
from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jobspine.core.errors import ValidationError
from jobspine.core.timestamps import to_iso8601

if TYPE_CHECKING:
    from jobspine.scheduling.store import JobStore


class ConcurrencyLimiter:
    """Resolves and enforces per-name running limits."""

    def __init__(self, defaults: dict[str, int] | None = None):
        self._defaults: dict[str, int] = {}
        self._lock = threading.Lock()
        self._in_flight: Counter[str] = Counter()
        for name, limit in (defaults or {}).items():
            self.set_limit(name, limit)

    def set_limit(self, name: str, limit: int | None) -> None:
        """Configure the default limit for *name* (``None`` removes it)."""
        with self._lock:
            if limit is None:
                self._defaults.pop(name, None)
                return
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                raise ValidationError("concurrency must be an integer >= 1", field="concurrency", value=limit)
            self._defaults[name] = limit

    def limit_for(self, name: str, job_limit: int | None = None) -> int | None:
        if job_limit is not None:
            return job_limit
        with self._lock:
            return self._defaults.get(name)

    @property
    def defaults(self) -> dict[str, int]:
        with self._lock:
            return dict(self._defaults)

    def claim_predicate(self, now: datetime) -> tuple[str, list[Any]]:
        """SQL fragment admitting a ``jobs`` row only while its name has a free slot.

        The fragment references the outer ``jobs`` table by name and is
        valid in both the candidate SELECT and the conditional UPDATE.
        """
        defaults = self.defaults
        params: list[Any] = []
        if defaults:
            whens = " ".join("WHEN ? THEN ?" for _ in defaults)
            limit_sql = f"COALESCE(jobs.concurrency, CASE jobs.name {whens} END)"
        else:
            limit_sql = "jobs.concurrency"

        running_sql = (
            "(SELECT COUNT(*) FROM jobs AS r"
            " WHERE r.name = jobs.name AND r.status = 'running'"
            " AND r.id != jobs.id AND r.lock_expires_at > ?)"
        )
        sql = f"({limit_sql} IS NULL OR {running_sql} < {limit_sql})"

        # placeholders appear in order: limit, running count, limit
        limit_params: list[Any] = []
        for name, limit in defaults.items():
            limit_params.extend([name, limit])
        params.extend(limit_params)
        params.append(to_iso8601(now))
        params.extend(limit_params)
        return sql, params

    def admit(self, store: JobStore, name: str, limit: int | None = None) -> bool:
        """True if another job named *name* may start now."""
        effective = self.limit_for(name, limit)
        if effective is None:
            return True
        return store.count_running(name) < effective

    # -- advisory counters -------------------------------------------------

    def acquire(self, name: str) -> None:
        with self._lock:
            self._in_flight[name] += 1

    def release(self, name: str) -> None:
        with self._lock:
            self._in_flight[name] -= 1
            if self._in_flight[name] <= 0:
                del self._in_flight[name]

    def in_flight(self, name: str | None = None) -> int | dict[str, int]:
        with self._lock:
            if name is not None:
                return self._in_flight.get(name, 0)
            return dict(self._in_flight)


__all__ = ["ConcurrencyLimiter"]
