"""
Error types raised by jobspine.

Public scheduler operations raise only :class:`JobSpineError` subclasses.
Each class pins a ``code``; the HTTP layer turns the code into a status
and the CLI prints the message.  Handler failures are the exception: they
never escape the worker, they become the job's ``last_error`` document
(see :func:`error_record`).

Architecture:
    ::

        JobSpineError
        ├── ValidationError              VALIDATION_FAILED  400
        │   ├── DuplicateJobError        dedupe key already taken
        │   └── CronParseError           bad cron expression or timezone
        ├── NotFoundError                NOT_FOUND          404
        ├── InvalidTransitionError       CONFLICT           409
        ├── SchedulerNotInitializedError NOT_INITIALIZED    500
        ├── HandlerError                 HANDLER_FAILED     worker only
        │   └── UnregisteredJobError
        ├── StorageError                 TRANSIENT          503
        └── LockConflict                 LOCK_CONFLICT      logged only

        StopRepeating                    control flow, not an error

Tags:
    error-handling, exception-hierarchy, jobspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse grouping of error classes, logged alongside ``code``."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    STATE = "STATE"
    CONFIG = "CONFIG"
    HANDLER = "HANDLER"
    STORAGE = "STORAGE"
    LOCK = "LOCK"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Which job, worker and attempt an error concerns.

    Anything else passed to :meth:`JobSpineError.with_context` lands in
    ``metadata``.
    """

    job_id: str | None = None
    job_name: str | None = None
    worker_id: str | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        known = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        return {**known, **self.metadata}


class JobSpineError(Exception):
    """Root of the jobspine error hierarchy.

    Subclasses override the class attributes ``code``,
    ``default_category`` and ``default_retryable``; instances may override
    category and retryability per raise.

    Examples:
        >>> err = NotFoundError("Job not found: 01HX").with_context(job_id="01HX")
        >>> err.code, err.context.job_id
        ('NOT_FOUND', '01HX')
    """

    code: str = "INTERNAL"
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category if category is not None else self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobSpineError:
        """Record job/worker details on the error and return it, for ``raise ... .with_context()``."""
        known = {f.name for f in fields(self.context)} - {"metadata"}
        for key, value in kwargs.items():
            if key in known:
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Log-friendly view of the error."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code})"


# =============================================================================
# CALLER ERRORS
# =============================================================================


class ValidationError(JobSpineError):
    """Malformed input: empty name, bad identifier, bad option values.

    Never retryable - the caller must fix the request.
    """

    default_category = ErrorCategory.VALIDATION
    code = "VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class DuplicateJobError(ValidationError):
    """A pending/running job with the same (name, dedupe_key) already exists."""

    pass


class CronParseError(ValidationError):
    """Cron expression or timezone could not be parsed."""

    pass


class NotFoundError(JobSpineError):
    """Unknown job id."""

    default_category = ErrorCategory.NOT_FOUND
    code = "NOT_FOUND"


class InvalidTransitionError(JobSpineError):
    """Requested status change is not allowed from the job's current status."""

    default_category = ErrorCategory.STATE
    code = "CONFLICT"


class SchedulerNotInitializedError(JobSpineError):
    """An operation was invoked before the scheduler was initialized."""

    default_category = ErrorCategory.CONFIG
    code = "NOT_INITIALIZED"


# =============================================================================
# ENGINE-INTERNAL ERRORS
# =============================================================================


class HandlerError(JobSpineError):
    """A job body failed. Recorded as ``last_error``, fed into retry."""

    default_category = ErrorCategory.HANDLER
    code = "HANDLER_FAILED"


class UnregisteredJobError(HandlerError):
    """No handler is registered for the job's name. Always terminal."""

    pass


class StorageError(JobSpineError):
    """Persistence failure. Retried by the poll loop on its next cycle."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True
    code = "TRANSIENT"


class LockConflict(JobSpineError):
    """A worker tried to finalize a job whose lease it no longer holds."""

    default_category = ErrorCategory.LOCK
    code = "LOCK_CONFLICT"


class StopRepeating(Exception):
    """Raised by a handler to end a repeating job's series.

    The job is moved to ``cancelled`` and ``result`` is stored.
    """

    def __init__(self, result: Any = None):
        super().__init__("repeat stopped by handler")
        self.result = result


def error_record(error: BaseException, attempt: int | None, at: str) -> dict[str, Any]:
    """Build the ``last_error`` document persisted on a failed attempt."""
    if isinstance(error, HandlerError) and error.cause is not None:
        error_type = type(error.cause).__name__
    else:
        error_type = type(error).__name__
    return {
        "message": str(error),
        "type": error_type,
        "attempt": attempt,
        "at": at,
    }


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "JobSpineError",
    "ValidationError",
    "DuplicateJobError",
    "CronParseError",
    "NotFoundError",
    "InvalidTransitionError",
    "SchedulerNotInitializedError",
    "HandlerError",
    "UnregisteredJobError",
    "StorageError",
    "LockConflict",
    "StopRepeating",
    "error_record",
]
