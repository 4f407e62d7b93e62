"""Tests for JobRunner outcomes and WorkerLoop."""

import time
from datetime import UTC, datetime, timedelta

import pytest

from jobspine.core.errors import StopRepeating
from jobspine.core.models import JobCreate, JobStatus, RepeatSpec, RetryConfig
from jobspine.scheduling import events
from jobspine.scheduling.lease import LeaseManager
from jobspine.scheduling.worker import JobRunner, WorkerLoop, WorkerStats


@pytest.fixture
def runner(store, registry, notifier, limiter, clock) -> JobRunner:
    return JobRunner(store, registry, notifier, limiter, clock=clock)


@pytest.fixture
def leases(store, limiter) -> LeaseManager:
    return LeaseManager(store, worker_id="w1", lease_ttl_ms=60_000, limiter=limiter)


def run_one(runner, leases):
    job = leases.claim()
    assert job is not None
    return job, runner.run(job, leases)


class TestSuccess:
    def test_one_shot_completes(self, store, registry, runner, leases, recorder, clock):
        registry.register("x", lambda job: {"ok": True})
        store.insert(JobCreate(name="x"))

        job, outcome = run_one(runner, leases)
        assert outcome == "completed"
        done = store.find_by_id(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.result == {"ok": True}
        assert done.finished_at == clock.now()
        assert done.lock_owner is None
        assert recorder.types() == [events.JOB_START, events.JOB_COMPLETE]

    def test_repeating_job_moves_to_next_occurrence(self, store, registry, runner, leases, clock):
        registry.register("tick", lambda job: "tock")
        clock.set(datetime(2024, 1, 1, 23, tzinfo=UTC))
        job = store.insert(JobCreate(name="tick", repeat=RepeatSpec("0 0 * * *")))
        assert job.next_run_at == datetime(2024, 1, 2, tzinfo=UTC)

        clock.set(datetime(2024, 1, 2, tzinfo=UTC))
        _, outcome = run_one(runner, leases)

        assert outcome == "repeated"
        after = store.find_by_id(job.id)
        assert after.status == JobStatus.PENDING
        assert after.attempts == 0
        assert after.next_run_at == datetime(2024, 1, 3, tzinfo=UTC)
        assert after.result == "tock"

    def test_stop_repeating_cancels(self, store, registry, runner, leases, recorder, clock):
        def handler(job):
            raise StopRepeating(result={"done": True})

        registry.register("tick", handler)
        job = store.insert(JobCreate(name="tick", repeat=RepeatSpec("* * * * *")))
        clock.advance(seconds=60)

        _, outcome = run_one(runner, leases)
        assert outcome == "cancelled"
        after = store.find_by_id(job.id)
        assert after.status == JobStatus.CANCELLED
        assert after.result == {"done": True}
        assert events.JOB_CANCEL in recorder.types()


class TestFailure:
    def test_retry_with_fixed_delay(self, store, registry, runner, leases, recorder, clock):
        def handler(job):
            raise RuntimeError("smtp down")

        registry.register("x", handler)
        job = store.insert(JobCreate(name="x", retry=RetryConfig(max_attempts=3, delay_ms=2000)))

        _, outcome = run_one(runner, leases)
        assert outcome == "retried"
        after = store.find_by_id(job.id)
        assert after.status == JobStatus.PENDING
        assert after.attempts == 1
        assert after.next_run_at == clock.now() + timedelta(seconds=2)
        assert after.lock_owner is None
        assert after.last_error["message"] == "smtp down"
        assert after.last_error["type"] == "RuntimeError"
        assert after.last_error["attempt"] == 1

        fail = recorder.of(events.JOB_FAIL)[0]
        assert fail.payload["final"] is False
        retry = recorder.of(events.JOB_RETRY)[0]
        assert retry.payload["delay_seconds"] == 2.0

    def test_exponential_backoff_delay(self, store, registry, runner, leases, clock):
        def handler(job):
            raise RuntimeError("boom")

        registry.register("x", handler)
        retry = RetryConfig(max_attempts=5, delay_ms=1000, backoff="exponential")
        job = store.insert(JobCreate(name="x", retry=retry))

        run_one(runner, leases)
        assert store.find_by_id(job.id).next_run_at == clock.now() + timedelta(seconds=2)
        clock.advance(seconds=2)
        run_one(runner, leases)
        assert store.find_by_id(job.id).next_run_at == clock.now() + timedelta(seconds=4)

    def test_single_attempt_is_terminal(self, store, registry, runner, leases, recorder):
        def handler(job):
            raise ValueError("bad input")

        registry.register("x", handler)
        job = store.insert(JobCreate(name="x"))

        _, outcome = run_one(runner, leases)
        assert outcome == "failed"
        after = store.find_by_id(job.id)
        assert after.status == JobStatus.FAILED
        assert after.attempts == 1
        assert after.finished_at is not None
        assert recorder.of(events.JOB_FAIL)[0].payload["final"] is True

    def test_exhausted_repeating_job_survives(self, store, registry, runner, leases, clock):
        """A failed occurrence does not end the series."""

        def handler(job):
            raise RuntimeError("upstream 500")

        registry.register("tick", handler)
        job = store.insert(JobCreate(name="tick", repeat=RepeatSpec("0 * * * *")))
        clock.set(datetime(2024, 1, 1, 1, tzinfo=UTC))

        run_one(runner, leases)
        after = store.find_by_id(job.id)
        assert after.status == JobStatus.PENDING
        assert after.attempts == 0
        assert after.next_run_at == datetime(2024, 1, 1, 2, tzinfo=UTC)
        assert after.last_error["message"] == "upstream 500"

    def test_unregistered_name_fails_without_retry(self, store, runner, leases, recorder):
        job = store.insert(JobCreate(name="ghost", retry=RetryConfig(max_attempts=5)))

        _, outcome = run_one(runner, leases)
        assert outcome == "failed"
        after = store.find_by_id(job.id)
        assert after.status == JobStatus.FAILED
        assert after.last_error["type"] == "UnregisteredJobError"
        assert events.JOB_RETRY not in recorder.types()


class TestLostLease:
    def test_outcome_discarded_after_reclaim(self, store, registry, runner, leases, recorder, clock):
        """The first worker's late completion neither persists nor emits."""
        other = LeaseManager(store, worker_id="w2", lease_ttl_ms=60_000)

        def handler(job):
            clock.advance(seconds=61)
            assert other.claim() is not None
            return "late"

        registry.register("x", handler)
        job = store.insert(JobCreate(name="x", retry=RetryConfig(max_attempts=2)))

        _, outcome = run_one(runner, leases)
        assert outcome == "discarded"
        current = store.find_by_id(job.id)
        assert current.status == JobStatus.RUNNING
        assert current.lock_owner == "w2"
        assert current.result is None
        assert events.JOB_COMPLETE not in recorder.types()

    def test_reap_fails_exhausted_leases(self, store, runner, leases, recorder, clock):
        job = store.insert(JobCreate(name="x"))
        leases.claim()
        clock.advance(seconds=61)

        reaped = runner.reap()
        assert [j.id for j in reaped] == [job.id]
        assert store.find_by_id(job.id).status == JobStatus.FAILED
        assert recorder.of(events.JOB_FAIL)[0].payload["final"] is True

    def test_reap_requeues_repeating_job(self, store, registry, runner, leases, recorder, clock):
        """A crashed worker's repeating job waits for its next occurrence."""
        registry.register("tick", lambda job: None)
        clock.set(datetime(2024, 1, 2, tzinfo=UTC))
        job = store.insert(JobCreate(name="tick", repeat=RepeatSpec(cron="0 0 * * *"), run_at=clock.now()))
        crashed = LeaseManager(store, worker_id="crashed-worker", lease_ttl_ms=60_000)
        assert crashed.claim() is not None
        clock.advance(seconds=61)

        reaped = runner.reap()
        assert [j.id for j in reaped] == [job.id]
        current = store.find_by_id(job.id)
        assert current.status == JobStatus.PENDING
        assert current.attempts == 0
        assert current.next_run_at == datetime(2024, 1, 3, tzinfo=UTC)
        assert current.lock_owner is None
        assert current.last_error["type"] == "LeaseExpired"
        assert events.JOB_FAIL in recorder.types()
        assert leases.claim() is None

    def test_advisory_counter_released(self, store, registry, runner, leases, limiter):
        seen = []
        registry.register("x", lambda job: seen.append(limiter.in_flight("x")))
        store.insert(JobCreate(name="x"))
        run_one(runner, leases)
        assert seen == [1]
        assert limiter.in_flight("x") == 0


class TestWorkerStats:
    def test_record(self):
        stats = WorkerStats()
        for outcome in ["completed", "repeated", "failed", "retried", "cancelled", "discarded"]:
            stats.record(outcome)
        d = stats.to_dict()
        assert d["total_processed"] == 6
        assert d["total_completed"] == 2
        assert d["total_failed"] == 1
        assert d["total_discarded"] == 1
        assert d["last_poll_at"] is None


class TestWorkerLoop:
    def test_run_once(self, store, registry, runner, leases):
        registry.register("x", lambda job: None)
        store.insert(JobCreate(name="x"))
        loop = WorkerLoop(runner, leases, poll_interval=0.01)
        assert loop.run_once() is True
        assert loop.run_once() is False
        assert loop.stats.total_completed == 1
        assert loop.stats.last_poll_at is not None

    @pytest.mark.integration
    def test_thread_processes_and_stops(self, store, registry, runner, leases):
        registry.register("x", lambda job: job.data["n"])
        ids = [store.insert(JobCreate(name="x", data={"n": n})).id for n in range(3)]

        loop = WorkerLoop(runner, leases, poll_interval=0.01)
        loop.start()
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline:
            if all(store.find_by_id(i).status == JobStatus.COMPLETED for i in ids):
                break
            time.sleep(0.01)
        loop.stop()
        assert loop.join(timeout=5)
        assert not loop.is_alive
        assert loop.stats.total_completed == 3
