"""Periodic digest composition for a single recipient."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from chat_notifier.domain.entities import (
    CompositePayload,
    DigestPeriod,
    RecipientProfile,
    WorkItem,
)
from chat_notifier.domain.ports import PayloadRenderer, WorkItemSource

DIGEST_WINDOWS: dict[DigestPeriod, timedelta] = {
    DigestPeriod.HOURLY: timedelta(hours=1),
    DigestPeriod.DAILY: timedelta(days=1),
    DigestPeriod.WEEKLY: timedelta(days=7),
}
ASSIGNED_LIMIT = 20
ASSIGNED_PREVIEW = 5


class DigestAggregator:
    """Collect a recipient's work for a digest period and render it."""

    def __init__(self, work_items: WorkItemSource, renderer: PayloadRenderer) -> None:
        self._work_items = work_items
        self._renderer = renderer

    async def build_digest(
        self, recipient: RecipientProfile, period: DigestPeriod, *, now: datetime
    ) -> CompositePayload:
        window = DIGEST_WINDOWS[period]
        open_items, completed = await asyncio.gather(
            self._work_items.list_open_items(recipient.app_user_id),
            self._work_items.list_completed_items(recipient.app_user_id, since=now - window),
        )
        assigned = [item for item in open_items if not item.is_completed][:ASSIGNED_LIMIT]
        overdue = [item for item in open_items if item.is_overdue(now)]
        overdue.sort(key=lambda item: item.overdue_by(now), reverse=True)
        due_soon = [
            item
            for item in open_items
            if not item.is_completed
            and item.due_at is not None
            and now <= item.due_at < now + window
        ]
        due_soon.sort(key=_due_key)

        sections = {
            "overdue": [item.to_context(now) for item in overdue],
            "due_soon": [item.to_context(now) for item in due_soon],
            "assigned": [item.to_context(now) for item in assigned[:ASSIGNED_PREVIEW]],
            "completed": [item.to_context(now) for item in completed],
        }
        stats = {
            "completed": len(completed),
            "in_progress": sum(1 for item in assigned if item.status == "in-progress"),
            "due_soon": len(due_soon),
            "overdue": len(overdue),
            "assigned": len(assigned),
        }
        title = f"Your {period.value} digest"
        context = {
            "period": period.value,
            "title": title,
            "generated_at": now.isoformat(),
            "recipient": {"id": recipient.id, "display_name": recipient.display_name},
            "sections": sections,
            "stats": stats,
        }
        payload = self._renderer.render(period.notification_type, context)
        return CompositePayload(
            type=period.notification_type.value,
            title=title,
            item_count=len({item.id for item in (*overdue, *due_soon, *assigned, *completed)}),
            sections=sections,
            stats=stats,
            payload=payload,
        )


def _due_key(item: WorkItem) -> datetime:
    assert item.due_at is not None
    return item.due_at


__all__ = ["DIGEST_WINDOWS", "DigestAggregator"]
