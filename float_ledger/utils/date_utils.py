"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from databases that drop tzinfo"""
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


def start_of_month(moment: datetime) -> datetime:
    """Midnight on the 1st of moment's month, keeping its tzinfo"""
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_day_start(moment: datetime) -> datetime:
    return (moment + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


def next_week_start(moment: datetime) -> datetime:
    """Next Monday 00:00 strictly after moment"""
    days_ahead = 7 - moment.weekday()
    return (moment + timedelta(days=days_ahead)).replace(hour=0, minute=0, second=0, microsecond=0)


def next_month_start(moment: datetime) -> datetime:
    if moment.month == 12:
        return moment.replace(year=moment.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return moment.replace(month=moment.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def next_settlement_boundary(now: datetime, frequency: str, tz_name: str = "Africa/Johannesburg") -> datetime:
    """
    When a settlement raised at `now` should run.

    real_time runs immediately; daily/weekly/monthly run at the next local
    day/week/month boundary in tz_name. Returned in UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if frequency == "real_time":
        return now.astimezone(timezone.utc)

    local_now = now.astimezone(ZoneInfo(tz_name))
    if frequency == "daily":
        boundary = next_day_start(local_now)
    elif frequency == "weekly":
        boundary = next_week_start(local_now)
    elif frequency == "monthly":
        boundary = next_month_start(local_now)
    else:
        raise ValueError(f"Unknown settlement frequency: {frequency}")
    return boundary.astimezone(timezone.utc)
