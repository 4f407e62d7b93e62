"""Job models (``jobs`` table).

Manifesto:
    The scheduler, the store and the API all pass the same typed
    :class:`Job` around.  Options that arrive as loose JSON (retry,
    repeat) are parsed into small dataclasses at the edge so invalid
    values are rejected at schedule time, never at execution time.

Tags:
    jobspine, models, dataclasses, job-lifecycle

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from jobspine.core.errors import ValidationError
from jobspine.core.timestamps import to_iso8601

DEFAULT_PRIORITY = 5
DEFAULT_QUERY_LIMIT = 100


class JobStatus(str, Enum):
    """Lifecycle states of a job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING})


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass
class RetryConfig:
    """Retry options of a job.

    ``delay_ms`` is the fixed delay, or the base of the exponential curve
    (``delay_ms * multiplier ** attempts``, capped at ``max_delay_ms``).
    """

    max_attempts: int = 3
    delay_ms: int = 1000
    backoff: str = "fixed"  # fixed, exponential
    multiplier: float = 2.0
    max_delay_ms: int | None = None
    jitter: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ValidationError(
                "retry.max_attempts must be an integer >= 1",
                field="retry.max_attempts",
                value=self.max_attempts,
            )
        if self.delay_ms < 0:
            raise ValidationError("retry.delay_ms must be >= 0", field="retry.delay_ms", value=self.delay_ms)
        if self.backoff not in ("fixed", "exponential"):
            raise ValidationError(
                "retry.backoff must be 'fixed' or 'exponential'",
                field="retry.backoff",
                value=self.backoff,
            )
        if self.multiplier < 1:
            raise ValidationError("retry.multiplier must be >= 1", field="retry.multiplier", value=self.multiplier)
        if self.max_delay_ms is not None and self.max_delay_ms < 0:
            raise ValidationError("retry.max_delay_ms must be >= 0", field="retry.max_delay_ms", value=self.max_delay_ms)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | RetryConfig | None) -> RetryConfig | None:
        if raw is None or isinstance(raw, RetryConfig):
            return raw
        if not isinstance(raw, dict):
            raise ValidationError("retry must be an object", field="retry", value=raw)
        known = {
            "max_attempts": raw.get("max_attempts", raw.get("maxAttempts")),
            "delay_ms": raw.get("delay_ms", raw.get("delay")),
            "backoff": raw.get("backoff"),
            "multiplier": raw.get("multiplier"),
            "max_delay_ms": raw.get("max_delay_ms"),
            "jitter": raw.get("jitter"),
        }
        try:
            return cls(**{k: v for k, v in known.items() if v is not None})
        except TypeError as e:
            raise ValidationError(f"invalid retry options: {e}", field="retry") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "delay_ms": self.delay_ms,
            "backoff": self.backoff,
            "multiplier": self.multiplier,
            "max_delay_ms": self.max_delay_ms,
            "jitter": self.jitter,
        }


@dataclass
class RepeatSpec:
    """Cron recurrence of a job, evaluated in ``timezone``."""

    cron: str
    timezone: str = "UTC"

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | RepeatSpec | None) -> RepeatSpec | None:
        if raw is None or isinstance(raw, RepeatSpec):
            return raw
        if not isinstance(raw, dict) or not raw.get("cron"):
            raise ValidationError("repeat.cron is required", field="repeat.cron", value=raw)
        return cls(cron=str(raw["cron"]), timezone=str(raw.get("timezone") or "UTC"))

    def to_dict(self) -> dict[str, Any]:
        return {"cron": self.cron, "timezone": self.timezone}


# ---------------------------------------------------------------------------
# jobs
# ---------------------------------------------------------------------------


@dataclass
class Job:
    """Job document (``jobs`` row)."""

    id: str
    name: str
    next_run_at: datetime
    created_at: datetime
    updated_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    priority: int = DEFAULT_PRIORITY
    attempts: int = 0
    max_attempts: int = 1
    retry: RetryConfig | None = None
    concurrency: int | None = None
    dedupe_key: str | None = None
    lock_owner: str | None = None
    lock_expires_at: datetime | None = None
    repeat: RepeatSpec | None = None
    last_run_at: datetime | None = None
    finished_at: datetime | None = None
    result: Any = None
    last_error: dict[str, Any] | None = None

    @property
    def is_repeating(self) -> bool:
        return self.repeat is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "id": self.id,
            "name": self.name,
            "data": self.data,
            "status": self.status.value,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "retry": self.retry.to_dict() if self.retry else None,
            "concurrency": self.concurrency,
            "dedupe_key": self.dedupe_key,
            "next_run_at": to_iso8601(self.next_run_at),
            "lock_owner": self.lock_owner,
            "lock_expires_at": to_iso8601(self.lock_expires_at),
            "repeat": self.repeat.to_dict() if self.repeat else None,
            "created_at": to_iso8601(self.created_at),
            "updated_at": to_iso8601(self.updated_at),
            "last_run_at": to_iso8601(self.last_run_at),
            "finished_at": to_iso8601(self.finished_at),
            "result": self.result,
            "last_error": self.last_error,
        }


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


@dataclass
class JobCreate:
    """DTO for scheduling a new job."""

    name: str
    data: dict[str, Any] | None = None
    priority: int = DEFAULT_PRIORITY
    concurrency: int | None = None
    retry: RetryConfig | None = None
    repeat: RepeatSpec | None = None
    dedupe_key: str | None = None
    run_at: datetime | None = None

    @property
    def max_attempts(self) -> int:
        return self.retry.max_attempts if self.retry else 1


@dataclass
class JobQuery:
    """Filter, sort and pagination for job listings."""

    status: JobStatus | list[JobStatus] | None = None
    name: str | None = None
    sort: str = "updated_at"
    order: str = "desc"
    limit: int = DEFAULT_QUERY_LIMIT
    skip: int = 0

    @property
    def statuses(self) -> list[JobStatus]:
        if self.status is None:
            return []
        if isinstance(self.status, (list, tuple, set, frozenset)):
            return [JobStatus(s) for s in self.status]
        return [JobStatus(self.status)]


def validate_priority(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("priority must be an integer", field="priority", value=value)
    return value


def validate_concurrency(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("concurrency must be an integer >= 1", field="concurrency", value=value)
    return value


__all__ = [
    "DEFAULT_PRIORITY",
    "DEFAULT_QUERY_LIMIT",
    "JobStatus",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "RetryConfig",
    "RepeatSpec",
    "Job",
    "JobCreate",
    "JobQuery",
    "validate_priority",
    "validate_concurrency",
]
