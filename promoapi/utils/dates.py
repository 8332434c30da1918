# promoapi/utils/dates.py
from __future__ import annotations
from datetime import datetime, timezone

def utcnow() -> datetime:
    # naive UTC, matching what is stored in the database
    return datetime.now(timezone.utc).replace(tzinfo=None)

def parse_iso8601(s: str | None):
    if not s:
        return None
    s = s.strip()
    # support trailing 'Z' (UTC)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)  # store naive UTC
    return dt

def iso(dt):
    return dt.isoformat() if dt else None
