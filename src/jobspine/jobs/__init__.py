"""Job bodies shipped with jobspine.

    send-email       simulated delivery + email_logs row
    generate-report  slow job, scheduled with concurrency 2
    retry-demo       fails until ``succeed_after_attempt``
    cron-cleanup     daily purge of old finished jobs

Bodies never sleep directly; delays go through the injected clock so
tests run them instantly with :class:`~jobspine.core.clock.ManualClock`.
"""

from __future__ import annotations

from jobspine.core.clock import Clock, SystemClock
from jobspine.jobs.cron_cleanup import CLEANUP_DEDUPE_KEY, make_cron_cleanup
from jobspine.jobs.email_log import EmailLog, EmailLogRepository
from jobspine.jobs.generate_report import REPORT_CONCURRENCY, make_generate_report
from jobspine.jobs.retry_demo import retry_demo
from jobspine.jobs.send_email import make_send_email
from jobspine.scheduling.registry import HandlerRegistry
from jobspine.scheduling.store import JobStore

SEND_EMAIL = "send-email"
GENERATE_REPORT = "generate-report"
RETRY_DEMO = "retry-demo"
CRON_CLEANUP = "cron-cleanup"


def register_demo_jobs(
    registry: HandlerRegistry,
    store: JobStore,
    email_log: EmailLogRepository | None = None,
    clock: Clock | None = None,
) -> None:
    """Register the demo job bodies on *registry*."""
    clock = clock or SystemClock()
    email_log = email_log or EmailLogRepository(store.conn, lock=store.lock)
    registry.register(SEND_EMAIL, make_send_email(email_log, clock), description="Send an email")
    registry.register(GENERATE_REPORT, make_generate_report(clock), description="Generate a report")
    registry.register(RETRY_DEMO, retry_demo, description="Fail until a given attempt")
    registry.register(
        CRON_CLEANUP,
        make_cron_cleanup(store, clock),
        description="Purge old finished jobs",
    )


__all__ = [
    "CLEANUP_DEDUPE_KEY",
    "CRON_CLEANUP",
    "EmailLog",
    "EmailLogRepository",
    "GENERATE_REPORT",
    "REPORT_CONCURRENCY",
    "RETRY_DEMO",
    "SEND_EMAIL",
    "register_demo_jobs",
]
