"""Read-only views of task-application work used by digests and surfaces."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .notification import NotificationPriority


@dataclass
class WorkItem:
    """A task assigned to a recipient, as reported by the task application."""

    id: str
    title: str
    status: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    due_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    board_name: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def is_overdue(self, now: datetime) -> bool:
        return not self.is_completed and self.due_at is not None and self.due_at < now

    def overdue_by(self, now: datetime) -> timedelta:
        if not self.is_overdue(now):
            return timedelta(0)
        assert self.due_at is not None
        return now - self.due_at

    def overdue_days(self, now: datetime) -> int:
        return math.ceil(self.overdue_by(now) / timedelta(days=1))

    def to_context(self, now: datetime | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority.value,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "board_name": self.board_name,
        }
        if now is not None and self.is_overdue(now):
            data["overdue_days"] = self.overdue_days(now)
            data["overdue_seconds"] = int(self.overdue_by(now).total_seconds())
        return data


@dataclass
class CompositePayload:
    """One consolidated message built from many underlying items."""

    type: str
    title: str
    item_count: int
    sections: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    stats: dict[str, int] = field(default_factory=dict)
    payload: dict[str, Any] = field(default_factory=dict)


__all__ = ["CompositePayload", "WorkItem"]
