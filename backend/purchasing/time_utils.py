from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Business 'today' derived from the canonical UTC clock."""
    return utcnow().date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar days from start to end (negative when end is earlier)."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    return (end - start).days


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_iso_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()
