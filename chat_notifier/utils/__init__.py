"""Utility helpers for reusable functionality."""

from .datetime import (
    ensure_utc,
    floor_to_hour,
    format_time_of_day,
    is_time_in_window,
    parse_time_of_day,
    resolve_timezone,
    start_of_day,
    to_local,
    utc_now,
)
from .locks import KeyedLock

__all__ = [
    "KeyedLock",
    "ensure_utc",
    "floor_to_hour",
    "format_time_of_day",
    "is_time_in_window",
    "parse_time_of_day",
    "resolve_timezone",
    "start_of_day",
    "to_local",
    "utc_now",
]
