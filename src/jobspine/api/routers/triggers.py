"""
Trigger router: enqueue the bundled job types.

POST /trigger/email       priority demo
POST /trigger/report      per-name concurrency demo (limit 2)
POST /trigger/retry-demo  retry demo (5 attempts, 2 s fixed delay)
"""

from __future__ import annotations

from fastapi import APIRouter

from jobspine.api.deps import SchedulerDep
from jobspine.api.schemas.common import SuccessResponse
from jobspine.api.schemas.jobs import (
    EmailTriggerBody,
    ReportTriggerBody,
    RetryDemoTriggerBody,
    TriggerResult,
)
from jobspine.jobs import GENERATE_REPORT, REPORT_CONCURRENCY, RETRY_DEMO, SEND_EMAIL

router = APIRouter(prefix="/trigger")

RETRY_DEMO_MAX_ATTEMPTS = 5
RETRY_DEMO_DELAY_MS = 2000


@router.post("/email", response_model=SuccessResponse[TriggerResult])
def trigger_email(scheduler: SchedulerDep, body: EmailTriggerBody):
    """Schedule a ``send-email`` job (1 = urgent .. 10 = low priority)."""
    job = scheduler.schedule(
        SEND_EMAIL,
        {"to": body.to, "subject": body.subject, "body": body.body},
        priority=body.priority,
    )
    return SuccessResponse(
        data=TriggerResult(message="Email job scheduled", job_id=job.id, priority=job.priority)
    )


@router.post("/report", response_model=SuccessResponse[TriggerResult])
def trigger_report(scheduler: SchedulerDep, body: ReportTriggerBody):
    """Schedule a ``generate-report`` job; at most two run at once."""
    job = scheduler.schedule(
        GENERATE_REPORT,
        {"report_type": body.report_type, "date_range": "last-30-days"},
        concurrency=REPORT_CONCURRENCY,
    )
    return SuccessResponse(
        data=TriggerResult(
            message=f"Report generation scheduled (Max concurrency: {REPORT_CONCURRENCY})",
            job_id=job.id,
            priority=job.priority,
        )
    )


@router.post("/retry-demo", response_model=SuccessResponse[TriggerResult])
def trigger_retry_demo(scheduler: SchedulerDep, body: RetryDemoTriggerBody):
    """Schedule a ``retry-demo`` job that fails until ``succeed_after_attempt``."""
    job = scheduler.schedule(
        RETRY_DEMO,
        {"succeed_after_attempt": body.succeed_after_attempt},
        retry={"max_attempts": RETRY_DEMO_MAX_ATTEMPTS, "delay_ms": RETRY_DEMO_DELAY_MS},
    )
    return SuccessResponse(
        data=TriggerResult(
            message="Retry demo scheduled",
            job_id=job.id,
            priority=job.priority,
            note=f"Will fail {body.succeed_after_attempt - 1} times, then succeed.",
        )
    )
