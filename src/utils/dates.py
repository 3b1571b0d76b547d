"""Millisecond timestamp helpers evaluated in an office timezone."""

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

import pytz

from src.utils.config import Settings


MS_IN_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def is_valid_timezone(name) -> bool:
    return isinstance(name, str) and name in pytz.all_timezones_set


def get_timezone(name: Optional[str]):
    """Return a pytz timezone, falling back to the default timezone."""
    if is_valid_timezone(name):
        return pytz.timezone(name)
    return pytz.timezone(Settings.DEFAULT_TIMEZONE)


def to_local(ms: float, tz_name: Optional[str]) -> datetime:
    tz = get_timezone(tz_name)
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(tz)


def from_local(day: date, at: time, tz_name: Optional[str]) -> int:
    """Epoch milliseconds for a wall clock time on a given local date."""
    tz = get_timezone(tz_name)
    local_dt = tz.localize(datetime.combine(day, at))
    return int(local_dt.timestamp() * 1000)


def start_of_day_ms(ms: float, tz_name: Optional[str]) -> int:
    return from_local(to_local(ms, tz_name).date(), time.min, tz_name)


def end_of_day_ms(ms: float, tz_name: Optional[str]) -> int:
    return from_local(to_local(ms, tz_name).date(), time(23, 59, 59, 999000), tz_name)


def month_year_key(ms: float, tz_name: Optional[str]) -> str:
    """Month bucket used for attendance and status documents, e.g. '10-2026'."""
    return to_local(ms, tz_name).strftime("%m-%Y")


def date_parts(ms: float, tz_name: Optional[str]) -> dict:
    local = to_local(ms, tz_name)
    return {"date": local.day, "month": local.month, "year": local.year}


def hh_mm(ms: float, tz_name: Optional[str]) -> str:
    return to_local(ms, tz_name).strftime("%H:%M")


def local_dates_between(start_ms: float, end_ms: float, tz_name: Optional[str]) -> List[date]:
    """Calendar dates touched by [start_ms, end_ms], both ends inclusive."""
    first = to_local(start_ms, tz_name).date()
    last = to_local(end_ms, tz_name).date()
    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def parse_hh_mm(value: str) -> Optional[time]:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError):
        return None
