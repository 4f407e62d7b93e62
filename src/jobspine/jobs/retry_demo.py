"""``retry-demo``: fails until a given attempt, then succeeds."""

from __future__ import annotations

from typing import Any

from jobspine.core.logging import get_logger
from jobspine.core.models import Job

log = get_logger(__name__)

DEFAULT_SUCCEED_AFTER_ATTEMPT = 3


class SimulatedFailure(RuntimeError):
    """Deliberate failure of the retry demo."""


def retry_demo(job: Job) -> dict[str, Any]:
    """Fail while ``job.attempts < succeed_after_attempt``.

    ``attempts`` counts execution starts including the current one, so
    ``succeed_after_attempt=3`` fails on attempts 1 and 2 and succeeds on 3.
    """
    succeed_after = int(job.data.get("succeed_after_attempt", DEFAULT_SUCCEED_AFTER_ATTEMPT))
    log.info("retry_demo_attempt", attempt=job.attempts, succeed_after_attempt=succeed_after)

    if job.attempts < succeed_after:
        raise SimulatedFailure(
            f"Simulated failure at attempt {job.attempts}. Will succeed at {succeed_after}"
        )

    log.info("retry_demo_succeeded", attempt=job.attempts)
    return {"attempts": job.attempts}
