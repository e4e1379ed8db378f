"""Persistent per-recipient summary view and its refresh policy."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any

from chat_notifier.domain.entities import (
    NotificationType,
    QueueCategory,
    RecipientProfile,
    WorkItem,
)
from chat_notifier.domain.ports import Payload, PayloadRenderer, WorkItemSource
from chat_notifier.infrastructure.notifications.scheduler import WorkQueueScheduler
from chat_notifier.utils import start_of_day

ASSIGNED_LIMIT = 20
OVERDUE_LIMIT = 10
RECENT_WINDOW = timedelta(hours=24)


def _assigned_sort_key(item: WorkItem) -> tuple[int, int, float]:
    # Priority descending, then earliest due date; undated items last.
    if item.due_at is None:
        return (-item.priority.rank, 1, 0.0)
    return (-item.priority.rank, 0, item.due_at.timestamp())


class SurfaceBuilder:
    """Build the context and payload of a recipient's summary surface."""

    def __init__(self, work_items: WorkItemSource, renderer: PayloadRenderer) -> None:
        self._work_items = work_items
        self._renderer = renderer

    async def build_context(self, recipient: RecipientProfile, *, now: datetime) -> dict[str, Any]:
        open_items, recent = await asyncio.gather(
            self._work_items.list_open_items(recipient.app_user_id),
            self._work_items.list_updated_items(recipient.app_user_id, since=now - RECENT_WINDOW),
        )
        active = [item for item in open_items if not item.is_completed]

        assigned = sorted(active, key=_assigned_sort_key)[:ASSIGNED_LIMIT]
        overdue = sorted(
            (item for item in active if item.is_overdue(now)),
            key=lambda item: item.overdue_by(now),
            reverse=True,
        )[:OVERDUE_LIMIT]

        local_midnight = start_of_day(recipient.local_now(now))
        local_end = local_midnight + timedelta(days=1)
        due_today = [
            item
            for item in active
            if item.due_at is not None and local_midnight <= item.due_at < local_end
        ]

        return {
            "recipient": {
                "id": recipient.id,
                "display_name": recipient.display_name,
                "timezone": recipient.timezone,
            },
            "generated_at": now.isoformat(),
            "assigned": [item.to_context(now) for item in assigned],
            "overdue": [item.to_context(now) for item in overdue],
            "due_today": [item.to_context(now) for item in due_today],
            "recently_updated": [item.to_context(now) for item in recent],
            "counts": {
                "assigned": len(active),
                "overdue": sum(1 for item in active if item.is_overdue(now)),
                "due_today": len(due_today),
                "recently_updated": len(recent),
            },
        }

    async def build(self, recipient: RecipientProfile, *, now: datetime) -> Payload:
        context = await self.build_context(recipient, now=now)
        return self._renderer.render(NotificationType.SURFACE_UPDATE, context)


class SurfaceRefreshDeduplicator:
    """Keep at most one pending surface rebuild per recipient."""

    def __init__(self, scheduler: WorkQueueScheduler) -> None:
        self._scheduler = scheduler

    def request(self, recipient_id: str) -> bool:
        return self._scheduler.enqueue(QueueCategory.SURFACE_REFRESH, recipient_id)


__all__ = ["SurfaceBuilder", "SurfaceRefreshDeduplicator"]
