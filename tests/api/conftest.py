"""Fixtures for API tests: an app bound to a manual-clock scheduler."""

import pytest
from fastapi.testclient import TestClient

from jobspine.api.app import create_app
from jobspine.api.settings import JobSpineSettings
from jobspine.jobs import register_demo_jobs


@pytest.fixture
def settings() -> JobSpineSettings:
    return JobSpineSettings(
        database_url=":memory:",
        start_scheduler=False,
        register_cleanup_cron=False,
        json_logs=False,
    )


@pytest.fixture
def app(settings, scheduler, store, clock):
    register_demo_jobs(scheduler.registry, store, clock=clock)
    return create_app(settings=settings, scheduler=scheduler)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
