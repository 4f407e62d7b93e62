"""Tests for LeaseManager and LeaseHeartbeat."""

import time
from datetime import timedelta

from jobspine.core.models import JobCreate, JobStatus, RetryConfig
from jobspine.scheduling.lease import LeaseHeartbeat, LeaseManager, default_worker_id


class TestLeaseManager:
    def test_claim_uses_worker_id_and_ttl(self, store, clock):
        store.insert(JobCreate(name="x"))
        leases = LeaseManager(store, worker_id="worker-1", lease_ttl_ms=30_000)
        job = leases.claim()
        assert job.lock_owner == "worker-1"
        assert job.lock_expires_at == clock.now() + timedelta(seconds=30)

    def test_generated_worker_id(self, store):
        leases = LeaseManager(store)
        assert leases.worker_id.count(":") == 2
        assert LeaseManager(store).worker_id != leases.worker_id

    def test_default_worker_id_contains_pid(self):
        import os

        assert f":{os.getpid()}:" in default_worker_id()

    def test_release_clears_lock(self, store):
        store.insert(JobCreate(name="x"))
        leases = LeaseManager(store, worker_id="w1")
        job = leases.claim()
        done = leases.release(job.id, JobStatus.COMPLETED, result=42)
        assert done.status == JobStatus.COMPLETED
        assert done.lock_owner is None
        assert done.lock_expires_at is None
        assert done.result == 42

    def test_release_after_reclaim_is_discarded(self, store, clock, caplog):
        """The late finalize of an expired lease changes nothing."""
        store.insert(JobCreate(name="x", retry=RetryConfig(max_attempts=3)))
        first = LeaseManager(store, worker_id="w1", lease_ttl_ms=1000)
        second = LeaseManager(store, worker_id="w2", lease_ttl_ms=60_000)

        job = first.claim()
        clock.advance(seconds=2)
        assert second.claim().id == job.id

        assert first.release(job.id, JobStatus.COMPLETED, result="late") is None
        current = store.find_by_id(job.id)
        assert current.status == JobStatus.RUNNING
        assert current.lock_owner == "w2"
        assert current.result is None
        assert "lease no longer held" in caplog.text

    def test_renew_only_by_owner(self, store, clock):
        store.insert(JobCreate(name="x"))
        owner = LeaseManager(store, worker_id="w1", lease_ttl_ms=10_000)
        other = LeaseManager(store, worker_id="w2", lease_ttl_ms=10_000)
        job = owner.claim()
        clock.advance(seconds=5)
        assert owner.renew(job.id) is True
        assert other.renew(job.id) is False
        assert store.find_by_id(job.id).lock_expires_at == clock.now() + timedelta(seconds=10)


class TestLeaseHeartbeat:
    def test_disabled_without_interval(self, store):
        leases = LeaseManager(store, worker_id="w1")
        with leases.heartbeat("any", None) as hb:
            pass
        assert hb.renewals == 0
        assert hb._thread is None

    def test_renews_while_running(self, store, clock):
        store.insert(JobCreate(name="x"))
        leases = LeaseManager(store, worker_id="w1", lease_ttl_ms=60_000)
        job = leases.claim()
        with LeaseHeartbeat(leases, job.id, interval_ms=10) as hb:
            deadline = time.monotonic() + 5
            while hb.renewals < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
        assert hb.renewals >= 2

    def test_stops_when_ownership_lost(self, store):
        store.insert(JobCreate(name="x"))
        leases = LeaseManager(store, worker_id="w1")
        job = leases.claim()
        leases.release(job.id, JobStatus.COMPLETED)
        with LeaseHeartbeat(leases, job.id, interval_ms=10) as hb:
            hb._thread.join(timeout=5)
            assert not hb._thread.is_alive()
        assert hb.renewals == 0
