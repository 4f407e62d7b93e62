"""Email log repository (``email_logs`` table)."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from jobspine.core.errors import StorageError
from jobspine.core.timestamps import from_iso8601, to_iso8601


@dataclass
class EmailLog:
    """One sent email."""

    id: int
    to: str
    subject: str | None
    sent_at: datetime
    job_id: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "to": self.to,
            "subject": self.subject,
            "sent_at": to_iso8601(self.sent_at),
            "job_id": self.job_id,
        }


class EmailLogRepository:
    """Persists emails sent by the ``send-email`` job.

    Shares the job store's connection; pass the store's lock so writes
    never interleave with a claim transaction.
    """

    def __init__(self, conn: sqlite3.Connection, lock: Any = None) -> None:
        self.conn = conn
        self._lock = lock or threading.RLock()

    def create(self, to: str, subject: str | None, sent_at: datetime, job_id: str | None) -> EmailLog:
        with self._lock:
            try:
                cursor = self.conn.execute(
                    "INSERT INTO email_logs (recipient, subject, sent_at, job_id) VALUES (?, ?, ?, ?)",
                    (to, subject, to_iso8601(sent_at), job_id),
                )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to write email log: {e}", cause=e) from e
        return EmailLog(id=cursor.lastrowid, to=to, subject=subject, sent_at=sent_at, job_id=job_id)

    def list_for_job(self, job_id: str) -> list[EmailLog]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM email_logs WHERE job_id = ? ORDER BY id", (job_id,)
            ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM email_logs").fetchone()[0]

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> EmailLog:
        return EmailLog(
            id=row["id"],
            to=row["recipient"],
            subject=row["subject"],
            sent_at=from_iso8601(row["sent_at"]),
            job_id=row["job_id"],
        )


__all__ = ["EmailLog", "EmailLogRepository"]
