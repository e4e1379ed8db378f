"""Accumulate low-urgency notifications and flush them as one message."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from chat_notifier.domain.entities import (
    CompositePayload,
    NotificationEvent,
    NotificationType,
    PendingBatchEntry,
    RecipientProfile,
)
from chat_notifier.domain.entities.recipient import MAX_PENDING_BATCH
from chat_notifier.domain.ports import PayloadRenderer


def summarize_event(
    event: NotificationEvent, *, now: datetime, deferred: bool = False
) -> PendingBatchEntry:
    """Return the compact batch entry kept for ``event``."""

    message = event.message
    if message and len(message) > 200:
        message = message[:197] + "..."
    return PendingBatchEntry(
        type=event.type,
        title=event.display_title,
        priority=event.priority,
        created_at=now,
        message=message,
        entity_id=event.subject_id,
        entity_type=event.entity_type or ("task" if event.task_id else None),
        deferred_for_quiet_hours=deferred,
    )


def _entry_context(entry: PendingBatchEntry) -> dict[str, Any]:
    return {
        "type": entry.type.value,
        "title": entry.title,
        "message": entry.message,
        "priority": entry.priority.value,
        "entity_id": entry.entity_id,
        "entity_type": entry.entity_type,
        "created_at": entry.created_at.isoformat(),
    }


class BatchAccumulator:
    """Recipient batch buffer operations."""

    def __init__(self, renderer: PayloadRenderer, *, max_entries: int = MAX_PENDING_BATCH) -> None:
        self._renderer = renderer
        self.max_entries = max_entries

    def add(self, recipient: RecipientProfile, entry: PendingBatchEntry) -> None:
        recipient.add_to_batch(entry, limit=self.max_entries)

    @staticmethod
    def is_flush_due(recipient: RecipientProfile, interval_minutes: int, now: datetime) -> bool:
        return recipient.is_batch_flush_due(interval_minutes, now)

    def compose(self, recipient: RecipientProfile) -> CompositePayload | None:
        """Group the pending entries by type, oldest first, into one payload.

        Returns ``None`` for an empty buffer. The buffer itself is left intact.
        """

        entries = sorted(recipient.pending_batch, key=lambda entry: entry.created_at)
        if not entries:
            return None

        sections: dict[str, list[dict[str, Any]]] = {}
        for entry in entries:
            sections.setdefault(entry.type.value, []).append(_entry_context(entry))

        count = len(entries)
        title = f"You have {count} new notification{'s' if count != 1 else ''}"
        stats = {notification_type: len(items) for notification_type, items in sections.items()}
        context = {
            "title": title,
            "item_count": count,
            "groups": sections,
            "stats": stats,
            "recipient": {
                "id": recipient.id,
                "display_name": recipient.display_name,
            },
        }
        payload = self._renderer.render(NotificationType.BATCH_NOTIFICATION, context)
        return CompositePayload(
            type=NotificationType.BATCH_NOTIFICATION.value,
            title=title,
            item_count=count,
            sections=sections,
            stats=stats,
            payload=payload,
        )

    def flush(self, recipient: RecipientProfile, *, now: datetime) -> CompositePayload | None:
        """Compose the buffer and drop exactly the entries that were composed."""

        composite = self.compose(recipient)
        if composite is None:
            return None
        recipient.clear_batch(now=now, count=composite.item_count)
        return composite


__all__ = ["BatchAccumulator", "summarize_event"]
