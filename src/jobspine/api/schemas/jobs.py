"""Job schemas: the Job representation, update bodies and trigger bodies."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from jobspine.core.models import Job


class JobSchema(BaseModel):
    """A job as returned by the API."""

    id: str
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    status: str
    priority: int
    attempts: int
    max_attempts: int
    retry: dict[str, Any] | None = None
    concurrency: int | None = None
    dedupe_key: str | None = None
    next_run_at: str
    lock_owner: str | None = None
    lock_expires_at: str | None = None
    repeat: dict[str, Any] | None = None
    created_at: str
    updated_at: str
    last_run_at: str | None = None
    finished_at: str | None = None
    result: Any = None
    last_error: dict[str, Any] | None = None

    @classmethod
    def from_job(cls, job: Job) -> JobSchema:
        return cls(**job.to_dict())


class JobStatsSchema(BaseModel):
    """Counts per status."""

    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0


class DeleteResult(BaseModel):
    id: str
    deleted: bool = True


class UpdateJobBody(BaseModel):
    """Partial update.  Omitted fields are left untouched."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    data: dict[str, Any] | None = None
    repeat: dict[str, Any] | str | None = None
    retry: dict[str, Any] | None = None
    priority: int | None = None
    concurrency: int | None = None
    dedupe_key: str | None = Field(default=None, validation_alias=AliasChoices("dedupe_key", "dedupeKey"))
    run_at: str | None = Field(
        default=None,
        validation_alias=AliasChoices("run_at", "runAt", "next_run_at", "nextRunAt"),
    )

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ── Triggers ─────────────────────────────────────────────────────────────


class EmailTriggerBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str = Field(min_length=1, description="Recipient address")
    subject: str | None = None
    body: str | None = None
    priority: int = Field(default=5, description="1 (urgent) .. 10 (low)")


class ReportTriggerBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_type: str = Field(
        default="summary",
        validation_alias=AliasChoices("report_type", "reportType"),
    )


class RetryDemoTriggerBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    succeed_after_attempt: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices("succeed_after_attempt", "succeedAfterAttempt"),
    )


class TriggerResult(BaseModel):
    message: str
    job_id: str
    priority: int
    note: str | None = None
