from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


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


def resolve_timezone(name: str | None) -> tzinfo:
    """Map a configured IANA name to a tzinfo ("UTC" and empty map to UTC)."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_day_bounds(now_utc: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    Return [start, end) of the local calendar day containing now_utc.

    Both bounds are UTC-naive so they compare directly with stored timestamps.
    The day starts at local midnight in tz.
    """
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    local_now = now_utc.astimezone(tz)
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    # Aware arithmetic is wall-clock, so this is the next local midnight even across DST
    next_midnight = local_midnight + timedelta(days=1)

    start = local_midnight.astimezone(timezone.utc).replace(tzinfo=None)
    end = next_midnight.astimezone(timezone.utc).replace(tzinfo=None)
    return start, end
