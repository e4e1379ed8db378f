"""Datetime conversions between entities (aware UTC) and columns (naive UTC)."""

from __future__ import annotations

from datetime import datetime

from chat_notifier.utils import ensure_utc


def to_db_datetime(value: datetime | None) -> datetime | None:
    aware = ensure_utc(value)
    if aware is None:
        return None
    return aware.replace(tzinfo=None)


def from_db_datetime(value: datetime | None) -> datetime | None:
    """Columns hold naive UTC values."""

    return ensure_utc(value)


__all__ = ["from_db_datetime", "to_db_datetime"]
