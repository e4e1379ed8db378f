"""Helpers for working with timezone-aware datetimes."""

from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Final

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DEFAULT_TIMEZONE: Final[str] = "UTC"
_OFFSET_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?:UTC|GMT)(?P<sign>[+-])(?P<hours>\d{1,2})(?::?(?P<minutes>\d{2}))?$",
    re.IGNORECASE,
)
_TIME_OF_DAY_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$"
)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Normalize ``value`` to UTC, treating naive values as already UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime, tz_name: str | None) -> datetime:
    """Express ``value`` in the recipient timezone named ``tz_name``."""

    aware = ensure_utc(value)
    assert aware is not None
    return aware.astimezone(resolve_timezone(tz_name or _DEFAULT_TIMEZONE))


def parse_time_of_day(value: str | time) -> time:
    """Parse an ``HH:MM`` string into a :class:`~datetime.time`."""

    if isinstance(value, time):
        return value
    match = _TIME_OF_DAY_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
    return time(hour=hour, minute=minute)


def format_time_of_day(value: time) -> str:
    """Return ``value`` formatted as ``HH:MM``."""

    return f"{value.hour:02d}:{value.minute:02d}"


def is_time_in_window(current: time, start: time, end: time) -> bool:
    """Return ``True`` when ``current`` falls inside ``[start, end)``.

    A window whose start is later than its end wraps past midnight, so
    ``22:00-08:00`` contains both ``23:30`` and ``03:00``. Equal bounds describe
    an empty window.
    """

    current_minutes = current.hour * 60 + current.minute
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute

    if start_minutes > end_minutes:
        return current_minutes >= start_minutes or current_minutes < end_minutes
    return start_minutes <= current_minutes < end_minutes


def floor_to_hour(value: datetime) -> datetime:
    """Truncate ``value`` to the start of its hour."""

    return value.replace(minute=0, second=0, microsecond=0)


def start_of_day(value: datetime) -> datetime:
    """Truncate ``value`` to local midnight, keeping its ``tzinfo``."""

    return value.replace(hour=0, minute=0, second=0, microsecond=0)


@lru_cache(maxsize=256)
def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve ``tz_name`` into a ``tzinfo`` instance."""

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        match = _OFFSET_PATTERN.match(tz_name)
        if match:
            sign = -1 if match.group("sign") == "-" else 1
            hours = int(match.group("hours"))
            minutes = int(match.group("minutes") or 0)
            offset = timedelta(hours=hours, minutes=minutes)
            return timezone(sign * offset)
    return ZoneInfo(_DEFAULT_TIMEZONE)
