"""Job store backed by SQLite.

Manifesto:
    The store is the only shared mutable resource of the engine.  Every
    worker, in every process, coordinates through it and nothing else:
    there is no authoritative in-memory queue.  Correctness therefore
    rests on one operation, :meth:`JobStore.claim`, which selects the
    best eligible job and takes its lease in a single ``BEGIN IMMEDIATE``
    transaction.  The ``UPDATE`` re-checks the whole eligibility
    predicate, so even a reader that raced the selection cannot take a
    job somebody else already holds.

Architecture:
    ::

        JobStore(conn, clock)
          ├── insert(JobCreate)            ─ validate, dedupe, persist
          ├── find_by_id / query / count_by_status / count_running
          ├── update(id, fields)           ─ user-editable fields
          ├── transition(id, allowed, ...) ─ guarded status change
          ├── delete(id)
          ├── claim(worker, ttl, limiter)  ─ atomic select + lease
          ├── finalize(id, worker, ...)    ─ owner-guarded write
          ├── renew(id, worker, ttl)       ─ owner-guarded lease extension
          ├── fail_exhausted_leases()      ─ expired + out of attempts (repeats requeue)
          └── purge_finished(before)       ─ housekeeping

    Claim ordering: ``priority ASC, next_run_at ASC, created_at ASC``.

Guardrails:
    ❌ Reading a candidate and writing its lease in two transactions
    ✅ ``BEGIN IMMEDIATE`` + predicate re-check in the ``UPDATE``
    ❌ Finalizing a job without checking lock ownership
    ✅ ``finalize()`` writes only where ``lock_owner = worker_id``

Tags:
    jobspine, scheduling, store, sqlite, atomic-claim, leases

Doc-Types:
    api-reference, architecture-map
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from jobspine.core.clock import Clock, SystemClock
from jobspine.core.errors import (
    DuplicateJobError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from jobspine.core.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobCreate,
    JobQuery,
    JobStatus,
    RepeatSpec,
    RetryConfig,
    validate_concurrency,
    validate_priority,
)
from jobspine.core.timestamps import from_iso8601, generate_ulid, to_iso8601
from jobspine.scheduling.concurrency import ConcurrencyLimiter
from jobspine.scheduling.cron import CronEvaluator

logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 1000

# Accepted sort keys (camelCase aliases kept for API clients) -> column
SORT_FIELDS = {
    "updated_at": "updated_at",
    "updatedAt": "updated_at",
    "created_at": "created_at",
    "createdAt": "created_at",
    "next_run_at": "next_run_at",
    "nextRunAt": "next_run_at",
    "last_run_at": "last_run_at",
    "lastRunAt": "last_run_at",
    "finished_at": "finished_at",
    "finishedAt": "finished_at",
    "priority": "priority",
    "name": "name",
    "status": "status",
    "attempts": "attempts",
}

# Fields callers may change through update()
UPDATABLE_FIELDS = frozenset(
    {"data", "priority", "concurrency", "retry", "repeat", "dedupe_key", "next_run_at"}
)

# Columns the engine writes through transition()/finalize()
STATE_COLUMNS = frozenset(
    {
        "status",
        "attempts",
        "next_run_at",
        "lock_owner",
        "lock_expires_at",
        "last_run_at",
        "finished_at",
        "result",
        "last_error",
    }
)

_JSON_COLUMNS = frozenset({"data", "retry", "repeat", "result", "last_error"})
_TIME_COLUMNS = frozenset(
    {"next_run_at", "lock_expires_at", "last_run_at", "finished_at", "created_at", "updated_at"}
)

# Eligible for claiming: due and unlocked, or running with an expired
# lease and attempts left.  Parameters: now, now, now.
_CLAIMABLE_SQL = """(
    (jobs.status = 'pending' AND jobs.next_run_at <= ?
        AND (jobs.lock_expires_at IS NULL OR jobs.lock_expires_at <= ?))
    OR (jobs.status = 'running' AND jobs.lock_expires_at <= ?
        AND jobs.attempts < jobs.max_attempts)
)"""

_CLAIM_ORDER_SQL = "ORDER BY jobs.priority ASC, jobs.next_run_at ASC, jobs.created_at ASC, jobs.id ASC"


def _encode(column: str, value: Any) -> Any:
    if column in _TIME_COLUMNS:
        return to_iso8601(value) if isinstance(value, datetime) else value
    if column == "status":
        return JobStatus(value).value
    if column in ("retry", "repeat"):
        return json.dumps(value.to_dict()) if value is not None else None
    if column in _JSON_COLUMNS:
        return json.dumps(value) if value is not None else None
    return value


def _decode_json(raw: str | None) -> Any:
    return json.loads(raw) if raw is not None else None


def _parse_time(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        parsed = from_iso8601(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp", field=field, value=value) from e
    if parsed is None:
        raise ValidationError(f"{field} must not be null", field=field)
    return parsed


class JobStore:
    """Persistence and atomic claiming of jobs.

    One store wraps one connection; the connection is shared between the
    threads of a scheduler and serialized by an internal lock.  Separate
    stores (or processes) on the same database file coordinate through
    SQLite's write lock.

    Example:
        >>> store = JobStore(create_connection(":memory:"))
        >>> job = store.insert(JobCreate(name="send-email", data={"to": "a@b.c"}))
        >>> claimed = store.claim("worker-1", timedelta(seconds=60))
        >>> claimed.id == job.id
        True
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Clock | None = None,
        cron: CronEvaluator | None = None,
    ) -> None:
        self.conn = conn
        self.clock: Clock = clock or SystemClock()
        self.cron = cron or CronEvaluator()
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Lock serializing use of the shared connection."""
        return self._lock

    # === Transactions ===

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding SQLite's reserved lock from the start."""
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
                yield self.conn
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Database error: {e}", cause=e) from e
            except BaseException:
                self._rollback()
                raise

    def _rollback(self) -> None:
        if self.conn.in_transaction:
            self.conn.rollback()

    def _fetchall(self, sql: str, params: Collection[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Database error: {e}", cause=e) from e

    def _now(self) -> datetime:
        return self.clock.now()

    # === Row mapping ===

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        retry_raw = _decode_json(row["retry"])
        repeat_raw = _decode_json(row["repeat"])
        return Job(
            id=row["id"],
            name=row["name"],
            data=_decode_json(row["data"]) or {},
            status=JobStatus(row["status"]),
            priority=row["priority"],
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            retry=RetryConfig(**retry_raw) if retry_raw else None,
            concurrency=row["concurrency"],
            dedupe_key=row["dedupe_key"],
            next_run_at=from_iso8601(row["next_run_at"]),
            lock_owner=row["lock_owner"],
            lock_expires_at=from_iso8601(row["lock_expires_at"]),
            repeat=RepeatSpec(**repeat_raw) if repeat_raw else None,
            created_at=from_iso8601(row["created_at"]),
            updated_at=from_iso8601(row["updated_at"]),
            last_run_at=from_iso8601(row["last_run_at"]),
            finished_at=from_iso8601(row["finished_at"]),
            result=_decode_json(row["result"]),
            last_error=_decode_json(row["last_error"]),
        )

    def _get_in_tx(self, conn: sqlite3.Connection, job_id: str) -> Job | None:
        row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    # === CRUD ===

    def insert(self, spec: JobCreate) -> Job:
        """Validate and persist a new pending job.

        Raises:
            ValidationError: empty name, bad priority/concurrency, bad cron
            DuplicateJobError: ``(name, dedupe_key)`` held by a live job
        """
        if not isinstance(spec.name, str) or not spec.name.strip():
            raise ValidationError("Job name is required", field="name", value=spec.name)
        if spec.data is not None and not isinstance(spec.data, dict):
            raise ValidationError("Job data must be an object", field="data", value=spec.data)
        validate_priority(spec.priority)
        validate_concurrency(spec.concurrency)
        self.cron.validate_spec(spec.repeat)

        now = self._now()
        if spec.run_at is not None:
            next_run_at = _parse_time(spec.run_at, "run_at")
        elif spec.repeat is not None:
            next_run_at = self.cron.next_for(spec.repeat, now)
        else:
            next_run_at = now

        job_id = generate_ulid()
        row = {
            "id": job_id,
            "name": spec.name,
            "data": spec.data or {},
            "status": JobStatus.PENDING,
            "priority": spec.priority,
            "attempts": 0,
            "max_attempts": spec.max_attempts,
            "retry": spec.retry,
            "concurrency": spec.concurrency,
            "dedupe_key": spec.dedupe_key,
            "next_run_at": next_run_at,
            "repeat": spec.repeat,
            "created_at": now,
            "updated_at": now,
        }
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        values = [_encode(k, v) for k, v in row.items()]

        with self._transaction() as conn:
            if spec.dedupe_key is not None:
                self._check_dedupe(conn, spec.name, spec.dedupe_key)
            try:
                conn.execute(f"INSERT INTO jobs ({columns}) VALUES ({placeholders})", values)
            except sqlite3.IntegrityError as e:
                raise self._duplicate(spec.name, spec.dedupe_key, e) from e
            job = self._get_in_tx(conn, job_id)

        logger.debug("Inserted job %s (%s)", job_id, spec.name)
        return job  # type: ignore[return-value]

    def _check_dedupe(
        self,
        conn: sqlite3.Connection,
        name: str,
        dedupe_key: str,
        exclude_id: str | None = None,
    ) -> None:
        active = sorted(s.value for s in ACTIVE_STATUSES)
        row = conn.execute(
            f"""
            SELECT id FROM jobs
            WHERE name = ? AND dedupe_key = ?
              AND status IN ({', '.join('?' for _ in active)})
              AND id != COALESCE(?, '')
            LIMIT 1
            """,
            (name, dedupe_key, *active, exclude_id),
        ).fetchone()
        if row:
            raise self._duplicate(name, dedupe_key).with_context(existing_job_id=row["id"])

    @staticmethod
    def _duplicate(name: str, dedupe_key: str | None, cause: Exception | None = None) -> DuplicateJobError:
        return DuplicateJobError(
            f"A pending or running '{name}' job with dedupe key {dedupe_key!r} already exists",
            field="dedupe_key",
            value=dedupe_key,
            cause=cause,
        )

    def find_by_id(self, job_id: str) -> Job | None:
        rows = self._fetchall("SELECT * FROM jobs WHERE id = ?", (job_id,))
        return self._row_to_job(rows[0]) if rows else None

    def query(self, query: JobQuery | None = None) -> list[Job]:
        """List jobs matching *query*, sorted and paginated."""
        query = query or JobQuery()
        column = SORT_FIELDS.get(query.sort)
        if column is None:
            raise ValidationError(f"Unsupported sort field: {query.sort!r}", field="sort", value=query.sort)
        order = (query.order or "desc").lower()
        if order not in ("asc", "desc"):
            raise ValidationError("order must be 'asc' or 'desc'", field="order", value=query.order)
        if query.limit < 1 or query.skip < 0:
            raise ValidationError("limit must be >= 1 and skip >= 0", field="limit", value=query.limit)
        try:
            statuses = query.statuses
        except ValueError as e:
            raise ValidationError(f"Unknown status: {query.status!r}", field="status", value=query.status) from e

        where: list[str] = []
        params: list[Any] = []
        if statuses:
            where.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(s.value for s in statuses)
        if query.name:
            where.append("name = ?")
            params.append(query.name)

        sql = "SELECT * FROM jobs"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" ORDER BY {column} {order.upper()}, id {order.upper()} LIMIT ? OFFSET ?"
        params.extend([min(query.limit, MAX_QUERY_LIMIT), query.skip])

        return [self._row_to_job(row) for row in self._fetchall(sql, params)]

    def count_by_status(self, name: str | None = None) -> dict[str, int]:
        """Job counts per status, plus ``total``."""
        sql = "SELECT status, COUNT(*) AS n FROM jobs"
        params: list[Any] = []
        if name:
            sql += " WHERE name = ?"
            params.append(name)
        sql += " GROUP BY status"

        counts = {status.value: 0 for status in JobStatus}
        for row in self._fetchall(sql, params):
            counts[row["status"]] = row["n"]
        counts["total"] = sum(counts.values())
        return counts

    def count_running(self, name: str) -> int:
        """Running jobs of *name* holding a live lease."""
        rows = self._fetchall(
            """
            SELECT COUNT(*) AS n FROM jobs
            WHERE name = ? AND status = 'running' AND lock_expires_at > ?
            """,
            (name, to_iso8601(self._now())),
        )
        return rows[0]["n"]

    def update(self, job_id: str, fields: dict[str, Any]) -> Job:
        """Apply a partial update of user-editable fields.

        Raises:
            NotFoundError: unknown id
            ValidationError: unknown field or invalid value
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        values = dict(fields)
        if "data" in values and not isinstance(values["data"], dict):
            raise ValidationError("Job data must be an object", field="data", value=values["data"])
        if "priority" in values:
            validate_priority(values["priority"])
        if "concurrency" in values:
            validate_concurrency(values["concurrency"])
        if "retry" in values:
            values["retry"] = RetryConfig.from_dict(values["retry"])
            values["max_attempts"] = values["retry"].max_attempts if values["retry"] else 1
        if "repeat" in values:
            values["repeat"] = RepeatSpec.from_dict(values["repeat"])
            self.cron.validate_spec(values["repeat"])
        if "next_run_at" in values:
            values["next_run_at"] = _parse_time(values["next_run_at"], "next_run_at")

        now = self._now()
        with self._transaction() as conn:
            current = self._get_in_tx(conn, job_id)
            if current is None:
                raise NotFoundError(f"Job not found: {job_id}").with_context(job_id=job_id)

            # attempts <= max_attempts must hold for the job as stored
            if "max_attempts" in values and values["max_attempts"] < current.attempts:
                raise ValidationError(
                    f"retry.max_attempts ({values['max_attempts']}) is below the "
                    f"{current.attempts} attempt(s) already made",
                    field="retry.max_attempts",
                    value=values["max_attempts"],
                )

            # a new schedule moves a waiting job to its next occurrence
            if (
                values.get("repeat") is not None
                and "next_run_at" not in values
                and current.status == JobStatus.PENDING
            ):
                values["next_run_at"] = self.cron.next_for(values["repeat"], now)

            if values.get("dedupe_key") is not None and current.status in ACTIVE_STATUSES:
                self._check_dedupe(conn, current.name, values["dedupe_key"], exclude_id=job_id)

            values["updated_at"] = now
            self._write(conn, job_id, values, guard_sql="", guard_params=())
            job = self._get_in_tx(conn, job_id)

        return job  # type: ignore[return-value]

    def transition(
        self,
        job_id: str,
        allowed: Collection[JobStatus],
        fields: dict[str, Any],
    ) -> Job | None:
        """Write engine state fields only if the job is in one of *allowed*.

        Returns the updated job, or ``None`` when the job is missing or its
        status is not allowed (the caller re-reads to decide why).
        """
        statuses = [JobStatus(s).value for s in allowed]
        guard = f"status IN ({', '.join('?' for _ in statuses)})"
        return self._guarded_write(job_id, fields, guard, statuses)

    def delete(self, job_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            return cursor.rowcount == 1

    # === Leases ===

    def claim(
        self,
        worker_id: str,
        lease_ttl: timedelta,
        limiter: ConcurrencyLimiter | None = None,
    ) -> Job | None:
        """Atomically take the lease of the best eligible job.

        Returns the claimed job (``status=running``, ``attempts`` already
        incremented) or ``None`` when nothing is eligible.
        """
        now = self._now()
        now_s = to_iso8601(now)
        expires_s = to_iso8601(now + lease_ttl)
        limit_sql, limit_params = (limiter or ConcurrencyLimiter()).claim_predicate(now)

        predicate = f"{_CLAIMABLE_SQL} AND {limit_sql}"
        predicate_params = [now_s, now_s, now_s, *limit_params]

        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT jobs.id FROM jobs WHERE {predicate} {_CLAIM_ORDER_SQL} LIMIT 1",
                predicate_params,
            ).fetchone()
            if row is None:
                return None

            cursor = conn.execute(
                f"""
                UPDATE jobs
                SET status = 'running',
                    lock_owner = ?,
                    lock_expires_at = ?,
                    attempts = attempts + 1,
                    last_run_at = ?,
                    updated_at = ?
                WHERE jobs.id = ? AND {predicate}
                """,
                [worker_id, expires_s, now_s, now_s, row["id"], *predicate_params],
            )
            if cursor.rowcount != 1:
                return None
            job = self._get_in_tx(conn, row["id"])

        logger.debug("Worker %s claimed job %s (attempt %s)", worker_id, job.id, job.attempts)
        return job

    def finalize(self, job_id: str, worker_id: str, fields: dict[str, Any]) -> Job | None:
        """Write the outcome of an attempt if *worker_id* still holds the lease."""
        return self._guarded_write(
            job_id,
            fields,
            "status = 'running' AND lock_owner = ?",
            [worker_id],
        )

    def renew(self, job_id: str, worker_id: str, lease_ttl: timedelta) -> bool:
        """Extend the lease; no-op when the caller no longer owns it."""
        now = self._now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE jobs SET lock_expires_at = ?, updated_at = ?
                WHERE id = ? AND status = 'running' AND lock_owner = ?
                """,
                (to_iso8601(now + lease_ttl), to_iso8601(now), job_id, worker_id),
            )
            return cursor.rowcount == 1

    def fail_exhausted_leases(self) -> list[Job]:
        """Settle running jobs whose lease expired with no attempts left.

        One-shot jobs become ``failed``.  Repeating jobs go back to
        ``pending`` at their next occurrence with ``attempts=0``; only the
        failed occurrence is lost.  Both keep a ``LeaseExpired`` error.
        """
        now = self._now()
        now_s = to_iso8601(now)
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM jobs
                WHERE status = 'running' AND lock_expires_at <= ?
                  AND attempts >= max_attempts
                """,
                (now_s,),
            ).fetchall()
            settled: list[Job] = []
            for row in rows:
                expired = self._row_to_job(row)
                last_error = json.dumps(
                    {
                        "message": "Lease expired before the attempt finished",
                        "type": "LeaseExpired",
                        "attempt": expired.attempts,
                        "at": now_s,
                    }
                )
                if expired.is_repeating:
                    next_run_s = to_iso8601(self.cron.next_for(expired.repeat, now))
                    conn.execute(
                        """
                        UPDATE jobs
                        SET status = 'pending', attempts = 0, next_run_at = ?,
                            lock_owner = NULL, lock_expires_at = NULL,
                            updated_at = ?, last_error = ?
                        WHERE id = ? AND status = 'running' AND lock_expires_at <= ?
                        """,
                        (next_run_s, now_s, last_error, expired.id, now_s),
                    )
                else:
                    conn.execute(
                        """
                        UPDATE jobs
                        SET status = 'failed', lock_owner = NULL, lock_expires_at = NULL,
                            finished_at = ?, updated_at = ?, last_error = ?
                        WHERE id = ? AND status = 'running' AND lock_expires_at <= ?
                        """,
                        (now_s, now_s, last_error, expired.id, now_s),
                    )
                settled.append(self._get_in_tx(conn, expired.id))  # type: ignore[arg-type]
        for job in settled:
            if job.status == JobStatus.PENDING:
                logger.warning(
                    "Job %s (%s) lost its lease; next occurrence at %s",
                    job.id,
                    job.name,
                    to_iso8601(job.next_run_at),
                )
            else:
                logger.warning("Job %s (%s) failed: lease expired after %s attempts", job.id, job.name, job.attempts)
        return settled

    def purge_finished(self, before: datetime) -> int:
        """Delete terminal jobs that finished before *before*."""
        statuses = [s.value for s in TERMINAL_STATUSES]
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM jobs
                WHERE status IN ({', '.join('?' for _ in statuses)})
                  AND COALESCE(finished_at, updated_at) < ?
                """,
                (*statuses, to_iso8601(before)),
            )
            return cursor.rowcount

    # === Internal writes ===

    def _guarded_write(
        self,
        job_id: str,
        fields: dict[str, Any],
        guard_sql: str,
        guard_params: Collection[Any],
    ) -> Job | None:
        unknown = set(fields) - STATE_COLUMNS
        if unknown:
            raise ValueError(f"Not a state column: {', '.join(sorted(unknown))}")
        values = dict(fields)
        values["updated_at"] = self._now()
        with self._transaction() as conn:
            if not self._write(conn, job_id, values, guard_sql, guard_params):
                return None
            return self._get_in_tx(conn, job_id)

    def _write(
        self,
        conn: sqlite3.Connection,
        job_id: str,
        values: dict[str, Any],
        guard_sql: str,
        guard_params: Collection[Any],
    ) -> bool:
        assignments = ", ".join(f"{column} = ?" for column in values)
        params = [_encode(column, value) for column, value in values.items()]
        sql = f"UPDATE jobs SET {assignments} WHERE id = ?"
        params.append(job_id)
        if guard_sql:
            sql += f" AND {guard_sql}"
            params.extend(guard_params)
        try:
            cursor = conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            raise DuplicateJobError(
                "Another pending or running job already uses this dedupe key",
                field="dedupe_key",
                value=values.get("dedupe_key"),
                cause=e,
            ) from e
        return cursor.rowcount == 1


__all__ = ["JobStore", "SORT_FIELDS", "UPDATABLE_FIELDS", "MAX_QUERY_LIMIT"]
