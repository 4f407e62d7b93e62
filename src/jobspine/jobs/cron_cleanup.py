"""``cron-cleanup``: daily purge of old finished jobs."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from jobspine.core.clock import Clock
from jobspine.core.logging import get_logger
from jobspine.core.models import Job
from jobspine.scheduling.store import JobStore

log = get_logger(__name__)

DEFAULT_RETENTION_DAYS = 7
CLEANUP_DEDUPE_KEY = "daily-cleanup"


def make_cron_cleanup(store: JobStore, clock: Clock):
    def cron_cleanup(job: Job) -> dict[str, Any]:
        """Delete completed/failed/cancelled jobs older than the retention window."""
        retention_days = int(job.data.get("retention_days", DEFAULT_RETENTION_DAYS))
        cutoff = clock.now() - timedelta(days=retention_days)
        purged = store.purge_finished(cutoff)
        log.info("cleanup_finished", purged=purged, retention_days=retention_days)
        return {"purged": purged, "retention_days": retention_days}

    return cron_cleanup
