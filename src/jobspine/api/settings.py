"""
API and engine settings.

All values can be overridden via environment variables prefixed with
``JOBSPINE_``.  The unprefixed names used by earlier deployments
(``DATABASE_URL``, ``WORKERS``, ``POLL_INTERVAL_MS``, ``LOCK_TIMEOUT_MS``,
``PORT``) are accepted as well.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


def _env(name: str, *legacy: str) -> AliasChoices:
    return AliasChoices(name, f"JOBSPINE_{name.upper()}", *legacy)


class JobSpineSettings(BaseSettings):
    """Settings for the jobspine service.

    Order of precedence (highest → lowest):
        1. Constructor arguments
        2. Environment variables (``JOBSPINE_WORKERS``, ``WORKERS``, ...)
        3. ``.env`` file
        4. Defaults below
    """

    # ── Store ────────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///jobspine.db",
        validation_alias=_env("database_url", "DATABASE_URL"),
        description="sqlite:///path or :memory:",
    )

    # ── Engine ───────────────────────────────────────────────────────────
    workers: int = Field(default=3, ge=1, validation_alias=_env("workers", "WORKERS"))
    poll_interval_ms: int = Field(default=1000, ge=0, validation_alias=_env("poll_interval_ms", "POLL_INTERVAL_MS"))
    lock_timeout_ms: int = Field(
        default=60000,
        ge=1,
        validation_alias=_env("lock_timeout_ms", "LOCK_TIMEOUT_MS"),
        description="Lease TTL of a claimed job",
    )
    drain_timeout_ms: int = Field(default=30000, ge=0, description="Graceful stop bound")
    lease_renew_interval_ms: int | None = Field(
        default=None,
        description="Renew leases of running jobs at this interval (disabled when unset)",
    )
    start_scheduler: bool = Field(default=True, description="Start worker loops with the API")
    register_demo_jobs: bool = Field(default=True, description="Register the bundled job bodies")
    register_cleanup_cron: bool = Field(default=True, description="Schedule the daily cron-cleanup job")
    cleanup_cron: str = Field(default="0 0 * * *")
    cleanup_timezone: str = Field(default="UTC")

    # ── Server ───────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, validation_alias=_env("port", "PORT"), description="Bind port")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    json_logs: bool | None = Field(default=None, description="JSON logs (auto-detect when unset)")

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="", description="URL prefix for all endpoints")
    api_title: str = Field(default="jobspine API", description="OpenAPI title")
    api_version: str = Field(default="0.1.0", description="OpenAPI version string")

    # ── CORS ─────────────────────────────────────────────────────────────
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    model_config: dict[str, Any] = {
        "env_prefix": "JOBSPINE_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }
