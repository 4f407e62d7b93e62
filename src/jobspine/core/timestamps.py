"""
Job ids and the timestamp storage format (stdlib-only).

Job ids are ULIDs: 48 bits of milliseconds followed by 80 random bits,
written as 26 Crockford base32 characters, so ids sort by creation time.

Timestamps are persisted as fixed-width UTC strings
(``2024-01-02T00:00:00.000000Z``) so that lexicographic order in SQL
equals chronological order; :func:`to_iso8601` is the only writer.

Tags:
    timestamps, ulid, utc, datetime, jobspine, stdlib-only
"""

import re
import secrets
import time
from datetime import UTC, datetime

_STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ULID_RE = re.compile(f"[{_CROCKFORD}]{{26}}")


def utc_now() -> datetime:
    return datetime.now(UTC)


def generate_ulid(now_ms: int | None = None) -> str:
    """New ULID stamped with *now_ms* (wall clock when omitted)."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    value = (now_ms & 0xFFFF_FFFF_FFFF) << 80 | secrets.randbits(80)
    chars = []
    for _ in range(26):
        value, digit = divmod(value, 32)
        chars.append(_CROCKFORD[digit])
    return "".join(reversed(chars))


def is_ulid(value: str) -> bool:
    """True if *value* is 26 upper-case Crockford base32 characters."""
    return bool(_ULID_RE.fullmatch(value or ""))


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return ensure_utc(dt).strftime(_STORAGE_FORMAT)


def from_iso8601(s: str | None) -> datetime | None:
    """Parse a stored (or any ISO 8601) timestamp into an aware UTC datetime."""
    if s is None:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(s))
