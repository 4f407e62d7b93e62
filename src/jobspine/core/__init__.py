"""jobspine core -- domain primitives shared by the engine and the API.

Architecture::

    errors.py        Structured error hierarchy (JobSpineError, StorageError, ...)
    logging.py       structlog configuration
    timestamps.py    ULID generation + fixed-width UTC timestamps
    clock.py         Injectable Clock (SystemClock, ManualClock)
    models.py        Job, JobStatus, RetryConfig, RepeatSpec, JobCreate, JobQuery
    schema.py        DDL for jobs + email_logs
    connection.py    SQLite connection factory (create_connection)
"""

from jobspine.core.clock import Clock, ManualClock, SystemClock
from jobspine.core.connection import create_connection
from jobspine.core.models import (
    Job,
    JobCreate,
    JobQuery,
    JobStatus,
    RepeatSpec,
    RetryConfig,
)

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "create_connection",
    "Job",
    "JobCreate",
    "JobQuery",
    "JobStatus",
    "RepeatSpec",
    "RetryConfig",
]
