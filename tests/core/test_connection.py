"""Tests for the SQLite connection factory."""

import pytest

from jobspine.core.connection import MEMORY, create_connection, resolve_database_path
from jobspine.core.errors import StorageError


class TestResolveDatabasePath:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite:///jobs.db", "jobs.db"),
            ("sqlite:////var/lib/jobs.db", "/var/lib/jobs.db"),
            ("sqlite://", MEMORY),
            (":memory:", MEMORY),
            ("", MEMORY),
            ("data/jobs.db", "data/jobs.db"),
        ],
    )
    def test_urls(self, url, expected):
        assert resolve_database_path(url) == expected

    def test_other_schemes_rejected(self):
        with pytest.raises(StorageError):
            resolve_database_path("postgresql://localhost/jobs")


class TestCreateConnection:
    def test_schema_applied(self):
        conn = create_connection()
        tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"jobs", "email_logs"} <= tables
        conn.close()

    def test_file_database_uses_wal(self, tmp_path):
        conn = create_connection(f"sqlite:///{tmp_path / 'jobs.db'}")
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        conn.close()

    def test_schema_is_idempotent(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'jobs.db'}"
        create_connection(url).close()
        conn = create_connection(url)
        assert conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0] == 0
        conn.close()

    def test_autocommit_mode(self):
        """The store issues BEGIN IMMEDIATE itself."""
        conn = create_connection()
        assert conn.isolation_level is None
        conn.close()
