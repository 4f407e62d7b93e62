"""Tests for jobspine.cli: CLI command smoke tests via CliRunner.

Every command runs against a temporary database file passed with
``--database`` so no settings or environment are needed.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from jobspine.cli.app import app
from jobspine.core.connection import create_connection
from jobspine.core.models import JobCreate, JobStatus
from jobspine.scheduling.store import JobStore

runner = CliRunner()


@pytest.fixture
def db(db_url):
    """Store on the same file the CLI opens."""
    store = JobStore(create_connection(db_url))
    yield store
    store.conn.close()


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "jobspine" in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("serve", "worker", "jobs"):
            assert command in result.output


class TestJobsCLI:
    def test_schedule_and_list(self, db_url, db):
        result = runner.invoke(
            app,
            ["jobs", "schedule", "send-email", "--data", '{"to": "a@b.c"}', "--priority", "2", "-d", db_url],
        )
        assert result.exit_code == 0, result.output
        jobs = db.query()
        assert len(jobs) == 1
        assert jobs[0].priority == 2
        assert jobs[0].data == {"to": "a@b.c"}

        listed = runner.invoke(app, ["jobs", "list", "-d", db_url])
        assert listed.exit_code == 0
        assert "send-email" in listed.output

    def test_schedule_bad_json(self, db_url):
        result = runner.invoke(app, ["jobs", "schedule", "send-email", "--data", "{oops", "-d", db_url])
        assert result.exit_code == 1

    def test_schedule_with_cron(self, db_url, db):
        result = runner.invoke(
            app,
            ["jobs", "schedule", "cron-cleanup", "--cron", "0 3 * * *", "--tz", "Europe/Paris", "-d", db_url],
        )
        assert result.exit_code == 0, result.output
        assert db.query()[0].repeat.timezone == "Europe/Paris"

    def test_show_unknown_id(self, db_url):
        result = runner.invoke(app, ["jobs", "show", "01HZZZZZZZZZZZZZZZZZZZZZZZ", "-d", db_url])
        assert result.exit_code == 1

    def test_cancel(self, db_url, db):
        job = db.insert(JobCreate(name="send-email", data={"to": "a@b.c"}))
        result = runner.invoke(app, ["jobs", "cancel", job.id, "-d", db_url])
        assert result.exit_code == 0, result.output
        assert db.find_by_id(job.id).status == JobStatus.CANCELLED

    def test_stats_json(self, db_url, db):
        db.insert(JobCreate(name="x"))
        result = runner.invoke(app, ["jobs", "stats", "--json", "-d", db_url])
        assert result.exit_code == 0
        assert '"pending": 1' in result.output

    def test_delete(self, db_url, db):
        job = db.insert(JobCreate(name="x"))
        result = runner.invoke(app, ["jobs", "delete", job.id, "-d", db_url])
        assert result.exit_code == 0
        assert db.find_by_id(job.id) is None


class TestWorkerCLI:
    def test_once_runs_due_jobs(self, db_url, db):
        job = db.insert(JobCreate(name="retry-demo", data={"succeed_after_attempt": 1}))
        result = runner.invoke(app, ["worker", "start", "--once", "-d", db_url])
        assert result.exit_code == 0, result.output
        assert "Ran 1 job(s)" in result.output
        assert db.find_by_id(job.id).status == JobStatus.COMPLETED


class TestServeCLI:
    def test_start_runs_uvicorn_factory(self):
        with patch("jobspine.cli.serve.uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "start", "--port", "8123"])
        assert result.exit_code == 0, result.output
        args, kwargs = run.call_args
        assert args == ("jobspine.api:create_app",)
        assert kwargs["factory"] is True
        assert kwargs["port"] == 8123
