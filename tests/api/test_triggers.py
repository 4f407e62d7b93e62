"""Tests for the /trigger endpoints."""

from jobspine.core.models import JobStatus


class TestTriggerEmail:
    def test_schedules_with_priority(self, client, scheduler):
        resp = client.post("/trigger/email", json={"to": "ops@example.com", "subject": "Hi", "priority": 1})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["priority"] == 1

        job = scheduler.get_job(data["job_id"])
        assert job.name == "send-email"
        assert job.data["to"] == "ops@example.com"

    def test_runs_to_completion(self, client, scheduler):
        job_id = client.post("/trigger/email", json={"to": "ops@example.com"}).json()["data"]["job_id"]
        scheduler.run_pending()
        resp = client.get(f"/jobs/{job_id}")
        assert resp.json()["data"]["status"] == "completed"
        assert resp.json()["data"]["result"]["sent"] is True

    def test_missing_recipient_is_400(self, client):
        resp = client.post("/trigger/email", json={"subject": "no one"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_FAILED"
        assert any(e["field"] == "to" for e in resp.json()["errors"])


class TestTriggerReport:
    def test_concurrency_two(self, client, scheduler):
        resp = client.post("/trigger/report", json={"reportType": "sales"})
        assert resp.status_code == 200
        job = scheduler.get_job(resp.json()["data"]["job_id"])
        assert job.concurrency == 2
        assert job.data["report_type"] == "sales"


class TestTriggerRetryDemo:
    def test_completes_on_third_attempt(self, client, scheduler, clock):
        resp = client.post("/trigger/retry-demo", json={"succeedAfterAttempt": 3})
        data = resp.json()["data"]
        assert data["note"] == "Will fail 2 times, then succeed."

        job = scheduler.get_job(data["job_id"])
        assert job.max_attempts == 5
        assert job.retry.delay_ms == 2000

        for _ in range(3):
            scheduler.run_pending()
            clock.advance(seconds=2)

        done = scheduler.get_job(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.attempts == 3

    def test_threshold_must_be_positive(self, client):
        assert client.post("/trigger/retry-demo", json={"succeed_after_attempt": 0}).status_code == 400
