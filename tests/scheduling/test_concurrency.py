"""Tests for ConcurrencyLimiter."""

import pytest

from jobspine.core.errors import ValidationError
from jobspine.core.models import JobCreate
from jobspine.scheduling.concurrency import ConcurrencyLimiter


class TestLimits:
    def test_job_value_wins_over_default(self):
        limiter = ConcurrencyLimiter({"report": 2})
        assert limiter.limit_for("report") == 2
        assert limiter.limit_for("report", 5) == 5
        assert limiter.limit_for("email") is None

    def test_set_limit_none_removes(self):
        limiter = ConcurrencyLimiter({"report": 2})
        limiter.set_limit("report", None)
        assert limiter.defaults == {}

    @pytest.mark.parametrize("bad", [0, -1, True, "2"])
    def test_invalid_limit(self, bad):
        with pytest.raises(ValidationError):
            ConcurrencyLimiter().set_limit("report", bad)

    def test_registry_listener_shape(self, registry):
        """Handlers registered with a concurrency become defaults."""
        limiter = ConcurrencyLimiter()
        registry.on_register(limiter.set_limit)
        registry.register("report", lambda job: None, concurrency=3)
        registry.register("email", lambda job: None)
        assert limiter.defaults == {"report": 3}


class TestClaimPredicate:
    def test_without_defaults(self, clock):
        sql, params = ConcurrencyLimiter().claim_predicate(clock.now())
        assert "jobs.concurrency" in sql
        assert "CASE" not in sql
        assert params == ["2024-01-01T00:00:00.000000Z"]

    def test_with_defaults(self, clock):
        sql, params = ConcurrencyLimiter({"report": 2}).claim_predicate(clock.now())
        assert "CASE jobs.name WHEN ? THEN ? END" in sql
        assert params == ["report", 2, "2024-01-01T00:00:00.000000Z", "report", 2]


class TestAdmit:
    def test_admit_counts_live_leases(self, store):
        from datetime import timedelta

        limiter = ConcurrencyLimiter({"report": 1})
        store.insert(JobCreate(name="report"))
        assert limiter.admit(store, "report") is True
        store.claim("w1", timedelta(seconds=60))
        assert limiter.admit(store, "report") is False
        assert limiter.admit(store, "report", limit=2) is True
        assert limiter.admit(store, "email") is True


class TestInFlight:
    def test_acquire_release(self):
        limiter = ConcurrencyLimiter()
        limiter.acquire("report")
        limiter.acquire("report")
        limiter.acquire("email")
        assert limiter.in_flight("report") == 2
        limiter.release("report")
        limiter.release("email")
        assert limiter.in_flight() == {"report": 1}
