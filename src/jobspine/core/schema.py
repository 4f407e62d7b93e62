"""DDL for the jobspine tables.

Timestamps are TEXT in the fixed-width format written by
:func:`jobspine.core.timestamps.to_iso8601`; JSON columns are TEXT.
"""

JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    data TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'pending',
    priority INTEGER NOT NULL DEFAULT 5,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 1,
    retry TEXT,
    concurrency INTEGER,
    dedupe_key TEXT,
    next_run_at TEXT NOT NULL,
    lock_owner TEXT,
    lock_expires_at TEXT,
    repeat TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_run_at TEXT,
    finished_at TEXT,
    result TEXT,
    last_error TEXT,
    CHECK (status IN ('pending', 'running', 'completed', 'failed', 'cancelled'))
)
"""

JOBS_INDEXES = (
    # claim ordering
    "CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(status, next_run_at, priority)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_name_status ON jobs(name, status)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_lock ON jobs(status, lock_expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_updated ON jobs(updated_at)",
    # at most one live job per (name, dedupe_key)
    """CREATE UNIQUE INDEX IF NOT EXISTS uq_jobs_dedupe ON jobs(name, dedupe_key)
       WHERE dedupe_key IS NOT NULL AND status IN ('pending', 'running')""",
)

EMAIL_LOGS_TABLE = """
CREATE TABLE IF NOT EXISTS email_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recipient TEXT NOT NULL,
    subject TEXT,
    sent_at TEXT NOT NULL,
    job_id TEXT
)
"""

SCHEMA_STATEMENTS = (JOBS_TABLE, *JOBS_INDEXES, EMAIL_LOGS_TABLE)

__all__ = ["JOBS_TABLE", "JOBS_INDEXES", "EMAIL_LOGS_TABLE", "SCHEMA_STATEMENTS"]
