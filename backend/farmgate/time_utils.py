from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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


def seconds_until(moment: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole seconds from now until moment, rounded up; 0 if already past."""
    if moment is None:
        return 0
    now = now or utcnow()
    remaining = (moment - now).total_seconds()
    if remaining <= 0:
        return 0
    whole = int(remaining)
    return whole if whole == remaining else whole + 1


def as_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize aware datetimes (e.g. from timestamptz columns) to UTC-naive."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
