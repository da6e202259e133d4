"""
Datetime helpers shared by the solver and the apply path.

Everything inside the scheduler works on timezone-aware UTC datetimes.
Table columns are timezone-aware and written with aware UTC values. SQLite
hands them back naive, so stored values are re-tagged as UTC when read.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MINUTES_PER_DAY = 24 * 60


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to the aware-UTC form written to table columns."""
    if value is None:
        return None
    return to_utc(value)


def from_storage(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return to_utc(value)


def utc_day(value: datetime) -> date:
    return to_utc(value).date()


def utc_day_range(value: datetime) -> Tuple[datetime, datetime]:
    """Return [00:00, next 00:00) of the UTC day containing value."""
    day = utc_day(value)
    start = datetime.combine(day, time(0, 0), tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def season_horizon(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    """Season bounds as [start_date 00:00Z, end_date + 1 day 00:00Z)."""
    start = datetime.combine(start_date, time(0, 0), tzinfo=timezone.utc)
    end = datetime.combine(end_date + timedelta(days=1), time(0, 0), tzinfo=timezone.utc)
    return start, end


def is_weekend(value: datetime) -> bool:
    return utc_day(value).weekday() >= 5


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def resolve_time_zone(name: str) -> ZoneInfo:
    """Look up an IANA zone, raising ValueError for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone: {name}") from exc


def local_hour(value: datetime, zone: ZoneInfo) -> int:
    return to_utc(value).astimezone(zone).hour


def parse_hhmm(value: str) -> int:
    """Parse "HH:mm" into minutes after midnight."""
    hours_text, _, minutes_text = value.partition(":")
    hours = int(hours_text)
    minutes = int(minutes_text)
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid HH:mm time: {value}")
    return hours * 60 + minutes


def local_to_utc(day: date, minutes_after_midnight: int, zone: ZoneInfo) -> datetime:
    """Interpret a wall-clock time on a local date and return it in UTC."""
    local = datetime.combine(day, time(minutes_after_midnight // 60, minutes_after_midnight % 60), tzinfo=zone)
    return local.astimezone(timezone.utc)
