from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
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


def local_day_bounds(tz_name: str, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Return [start, end) of the local calendar day containing `now`,
    as UTC-naive datetimes comparable with stored timestamps.

    `now` is UTC-naive (as returned by utcnow()); defaults to utcnow().
    """
    tz = ZoneInfo(tz_name)
    now_utc = (now or utcnow()).replace(tzinfo=timezone.utc)
    local_date = now_utc.astimezone(tz).date()

    start_local = datetime.combine(local_date, time.min, tzinfo=tz)
    end_local = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)

    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )
