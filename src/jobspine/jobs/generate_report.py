"""``generate-report``: a slow job used to demonstrate concurrency limits."""

from __future__ import annotations

from typing import Any

from jobspine.core.clock import Clock
from jobspine.core.logging import get_logger
from jobspine.core.models import Job

log = get_logger(__name__)

REPORT_DELAY_SECONDS = 5.0

# Scheduled by POST /trigger/report with this per-name limit
REPORT_CONCURRENCY = 2


def make_generate_report(clock: Clock):
    def generate_report(job: Job) -> dict[str, Any]:
        """Generate a report (simulated heavy processing)."""
        report_type = job.data.get("report_type") or job.data.get("reportType") or "summary"
        log.info("generating_report", report_type=report_type, date_range=job.data.get("date_range"))

        clock.sleep(REPORT_DELAY_SECONDS)

        stamp = int(clock.now().timestamp() * 1000)
        log.info("report_generated", report_type=report_type)
        return {"path": f"/reports/{report_type}_{stamp}.pdf", "size": "2.5MB"}

    return generate_report
