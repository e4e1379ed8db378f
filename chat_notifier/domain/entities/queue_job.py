"""Transient unit of work held by the in-process queues."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class QueueCategory(str, Enum):
    NOTIFICATIONS = "notifications"
    BATCHES = "batches"
    DIGESTS = "digests"
    SURFACE_REFRESH = "surface_refresh"
    ANALYTICS = "analytics"


@dataclass
class QueueJob:
    """A queued job ordered by ``(weight, enqueued_at)``.

    ``key`` identifies the subject of the job (a notification or recipient id)
    and is what per-queue deduplication compares.
    """

    category: QueueCategory
    key: str
    enqueued_at: datetime
    weight: int = 3
    payload: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    @property
    def sort_key(self) -> tuple[int, datetime, int]:
        return (self.weight, self.enqueued_at, self.sequence)


__all__ = ["QueueCategory", "QueueJob"]
