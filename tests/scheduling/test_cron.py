"""Tests for CronEvaluator."""

from datetime import UTC, datetime

import pytest

from jobspine.core.errors import CronParseError
from jobspine.core.models import RepeatSpec
from jobspine.scheduling.cron import CronEvaluator


@pytest.fixture
def cron() -> CronEvaluator:
    return CronEvaluator()


class TestNextRun:
    def test_daily_midnight(self, cron):
        after = datetime(2024, 1, 1, 23, tzinfo=UTC)
        first = cron.next_run("0 0 * * *", "UTC", after)
        assert first == datetime(2024, 1, 2, tzinfo=UTC)
        assert cron.next_run("0 0 * * *", "UTC", first) == datetime(2024, 1, 3, tzinfo=UTC)

    def test_strictly_after(self, cron):
        at = datetime(2024, 1, 1, 12, 30, tzinfo=UTC)
        assert cron.next_run("30 12 * * *", "UTC", at) == datetime(2024, 1, 2, 12, 30, tzinfo=UTC)

    def test_evaluated_in_timezone(self, cron):
        """Midnight in New York is 05:00 UTC in winter."""
        after = datetime(2024, 1, 1, 12, tzinfo=UTC)
        assert cron.next_run("0 0 * * *", "America/New_York", after) == datetime(2024, 1, 2, 5, tzinfo=UTC)

    def test_dst_shift(self, cron):
        """Same wall-clock time, different UTC offset after DST starts."""
        after = datetime(2024, 3, 10, 12, tzinfo=UTC)
        assert cron.next_run("0 0 * * *", "America/New_York", after) == datetime(2024, 3, 11, 4, tzinfo=UTC)

    def test_dst_fall_back_runs_once(self, cron):
        """The repeated 01:00 hour in November does not fire a daily job twice."""
        after = datetime(2024, 11, 3, 4, tzinfo=UTC)
        first = cron.next_run("30 1 * * *", "America/New_York", after)
        assert first == datetime(2024, 11, 3, 5, 30, tzinfo=UTC)
        assert cron.next_run("30 1 * * *", "America/New_York", first) == datetime(2024, 11, 4, 6, 30, tzinfo=UTC)

    def test_result_is_utc(self, cron):
        result = cron.next_run("*/5 * * * *", "Europe/Paris", datetime(2024, 1, 1, tzinfo=UTC))
        assert result.utcoffset().total_seconds() == 0
        assert result == datetime(2024, 1, 1, 0, 5, tzinfo=UTC)

    def test_next_for(self, cron):
        spec = RepeatSpec(cron="0 * * * *")
        assert cron.next_for(spec, datetime(2024, 1, 1, 0, 10, tzinfo=UTC)) == datetime(2024, 1, 1, 1, tzinfo=UTC)


class TestValidate:
    @pytest.mark.parametrize("expression", ["", "* * *", "0 0 * * * *", "61 * * * *", "every day"])
    def test_bad_expressions(self, cron, expression):
        with pytest.raises(CronParseError):
            cron.validate(expression)

    def test_unknown_timezone(self, cron):
        with pytest.raises(CronParseError) as exc_info:
            cron.validate("0 0 * * *", "Mars/Olympus_Mons")
        assert exc_info.value.field == "repeat.timezone"

    def test_valid(self, cron):
        cron.validate("0 9 * * 1-5", "Europe/London")
        cron.validate_spec(None)
