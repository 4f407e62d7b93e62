"""SQLite connection factory.

Connections are opened in autocommit mode (``isolation_level=None``) so
the store controls transactions explicitly with ``BEGIN IMMEDIATE``; the
claim relies on that to serialize competing workers, including workers in
other processes sharing the same database file.

Usage::

    from jobspine.core.connection import create_connection

    conn = create_connection("sqlite:///jobspine.db")
    conn = create_connection(":memory:")
"""

from __future__ import annotations

import logging
import sqlite3

from jobspine.core.errors import StorageError
from jobspine.core.schema import SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def resolve_database_path(url: str) -> str:
    """Turn ``sqlite:///path`` (or a bare path) into a sqlite3 path."""
    if not url:
        return MEMORY
    if url.startswith("sqlite:///"):
        path = url[len("sqlite:///"):]
        return path or MEMORY
    if url.startswith("sqlite://"):
        return MEMORY
    if "://" in url:
        raise StorageError(f"Unsupported database URL: {url!r} (only sqlite is supported)")
    return url


def create_connection(url: str = MEMORY, *, timeout: float = 30.0) -> sqlite3.Connection:
    """Open a connection and make sure the schema exists."""
    path = resolve_database_path(url)
    try:
        conn = sqlite3.connect(
            path,
            timeout=timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        if path != MEMORY:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        apply_schema(conn)
    except sqlite3.Error as e:
        raise StorageError(f"Failed to open database {path!r}: {e}", cause=e) from e
    logger.debug("Opened database %s", path)
    return conn


def apply_schema(conn: sqlite3.Connection) -> None:
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)


__all__ = ["MEMORY", "apply_schema", "create_connection", "resolve_database_path"]
