"""Cron evaluation for repeating jobs.

Expressions are standard 5-field cron evaluated with croniter in the
job's IANA timezone; results are returned in UTC.  Validation happens at
schedule/update time so a malformed expression never reaches a worker.

Tags:
    jobspine, scheduling, cron, croniter, zoneinfo, timezone

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadCronError, CroniterBadDateError, croniter

from jobspine.core.errors import CronParseError
from jobspine.core.models import RepeatSpec
from jobspine.core.timestamps import ensure_utc

logger = logging.getLogger(__name__)


class CronEvaluator:
    """Compute next occurrences of cron expressions.

    Example:
        >>> evaluator = CronEvaluator()
        >>> evaluator.next_run("0 0 * * *", "UTC", datetime(2024, 1, 1, 23, tzinfo=UTC))
        datetime.datetime(2024, 1, 2, 0, 0, tzinfo=datetime.timezone.utc)
    """

    def validate(self, expression: str, timezone: str = "UTC") -> None:
        """Raise :class:`CronParseError` if the expression or zone is invalid."""
        self._zone(timezone)
        if not isinstance(expression, str) or len(expression.split()) != 5:
            raise CronParseError(
                f"Cron expression must have 5 fields: {expression!r}",
                field="repeat.cron",
                value=expression,
            )
        if not croniter.is_valid(expression):
            raise CronParseError(
                f"Invalid cron expression: {expression!r}",
                field="repeat.cron",
                value=expression,
            )

    def validate_spec(self, spec: RepeatSpec | None) -> None:
        if spec is not None:
            self.validate(spec.cron, spec.timezone)

    def next_run(self, expression: str, timezone: str, after: datetime) -> datetime:
        """Next occurrence strictly after *after*, in UTC.

        Occurrences are local wall-clock times.  When clocks fall back, the
        repeated hour is not run a second time: the result's local time is
        always later than the local time of *after*.
        """
        tz = self._zone(timezone)
        after_local = ensure_utc(after).astimezone(tz)
        after_wall = after_local.replace(tzinfo=None)
        try:
            itr = croniter(expression, after_local)
            next_local = itr.get_next(datetime)
            while next_local.replace(tzinfo=None) <= after_wall:
                next_local = itr.get_next(datetime)
        except (CroniterBadCronError, CroniterBadDateError, ValueError) as e:
            raise CronParseError(
                f"Invalid cron expression: {expression!r}",
                field="repeat.cron",
                value=expression,
                cause=e,
            ) from e
        return next_local.astimezone(UTC)

    def next_for(self, spec: RepeatSpec, after: datetime) -> datetime:
        return self.next_run(spec.cron, spec.timezone, after)

    @staticmethod
    def _zone(timezone: str) -> ZoneInfo:
        try:
            return ZoneInfo(timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise CronParseError(
                f"Unknown timezone: {timezone!r}",
                field="repeat.timezone",
                value=timezone,
                cause=e,
            ) from e


__all__ = ["CronEvaluator"]
