"""``send-email``: simulated mail delivery that records an email log."""

from __future__ import annotations

from typing import Any

from jobspine.core.clock import Clock
from jobspine.core.errors import ValidationError
from jobspine.core.logging import get_logger
from jobspine.core.models import Job
from jobspine.core.timestamps import to_iso8601
from jobspine.jobs.email_log import EmailLogRepository

log = get_logger(__name__)

SEND_DELAY_SECONDS = 1.0


def make_send_email(email_log: EmailLogRepository, clock: Clock):
    def send_email(job: Job) -> dict[str, Any]:
        """Send an email (simulated) and log it."""
        to = job.data.get("to")
        if not to:
            raise ValidationError("send-email requires 'to'", field="to")
        subject = job.data.get("subject")

        log.info("sending_email", to=to, subject=subject)
        clock.sleep(SEND_DELAY_SECONDS)

        sent_at = clock.now()
        email_log.create(to=to, subject=subject, sent_at=sent_at, job_id=job.id)
        log.info("email_sent", to=to)
        return {"sent": True, "timestamp": to_iso8601(sent_at)}

    return send_email
