"""
Timestamps.

Stored datetimes are UTC without tzinfo; JSON carries them as
ISO-8601 with a trailing "Z".
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2026-01-31", "2026-01-31T09:30", "...Z" or "...+02:00" -> UTC-naive.

    Blank -> None. Raises ValueError when unparseable.
    """
    if value is None or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"

    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def day_range_end(value: Optional[str]) -> Optional[datetime]:
    """
    Exclusive upper bound for a "to" filter.

    A plain date covers that whole day, so it becomes the next midnight.
    A full datetime stays inclusive.
    """
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return None
    if len(value.strip()) == 10:  # YYYY-MM-DD
        return parsed + timedelta(days=1)
    return parsed + timedelta(microseconds=1)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=None, microsecond=0).isoformat() + "Z"
