"""Tests for batch composition, digest aggregation and the summary surface."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from chat_notifier.application.use_cases.notifications import (
    BatchAccumulator,
    DigestAggregator,
    SurfaceBuilder,
    summarize_event,
)
from chat_notifier.domain.entities import (
    DigestPeriod,
    NotificationEvent,
    NotificationPriority,
    NotificationType,
    WorkItem,
)

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def _event(notification_type=NotificationType.TASK_UPDATED, **overrides) -> NotificationEvent:
    values = {"type": notification_type, "user_id": "user-1", "title": "Task changed"}
    values.update(overrides)
    return NotificationEvent(**values)


def test_summarize_event_truncates_long_messages():
    entry = summarize_event(_event(message="x" * 500, task_id="T1"), now=NOW, deferred=True)

    assert len(entry.message) == 200
    assert entry.message.endswith("...")
    assert entry.entity_id == "T1"
    assert entry.entity_type == "task"
    assert entry.deferred_for_quiet_hours


def test_compose_groups_entries_oldest_first(renderer, recipient_factory):
    batches = BatchAccumulator(renderer)
    recipient = recipient_factory()
    batches.add(recipient, summarize_event(_event(title="second"), now=NOW + timedelta(minutes=1)))
    batches.add(recipient, summarize_event(_event(title="first"), now=NOW))
    batches.add(
        recipient,
        summarize_event(_event(NotificationType.COMMENT_ADDED, title="comment"), now=NOW),
    )

    composite = batches.compose(recipient)

    assert composite.item_count == 3
    assert composite.title == "You have 3 new notifications"
    assert [item["title"] for item in composite.sections["task_updated"]] == ["first", "second"]
    assert composite.stats == {"task_updated": 2, "comment_added": 1}
    assert renderer.calls[-1][0] is NotificationType.BATCH_NOTIFICATION
    assert len(recipient.pending_batch) == 3


def test_compose_empty_buffer_returns_none(renderer, recipient_factory):
    assert BatchAccumulator(renderer).compose(recipient_factory()) is None
    assert renderer.calls == []


def test_flush_drops_only_composed_entries(renderer, recipient_factory):
    batches = BatchAccumulator(renderer)
    recipient = recipient_factory()
    batches.add(recipient, summarize_event(_event(), now=NOW))

    composite = batches.flush(recipient, now=NOW)

    assert composite.item_count == 1
    assert composite.title == "You have 1 new notification"
    assert recipient.pending_batch == []
    assert recipient.last_batch_flushed_at == NOW


def test_accumulator_respects_configured_cap(renderer, recipient_factory):
    batches = BatchAccumulator(renderer, max_entries=3)
    recipient = recipient_factory()

    for index in range(5):
        batches.add(recipient, summarize_event(_event(title=f"t{index}"), now=NOW))

    assert [entry.title for entry in recipient.pending_batch] == ["t2", "t3", "t4"]


@pytest.mark.asyncio
async def test_daily_digest_sections_and_stats(renderer, work_items, recipient_factory):
    work_items.open_items["user-1"] = [
        WorkItem(id="late", title="Late", status="todo", due_at=NOW - timedelta(days=2)),
        WorkItem(id="later", title="Later", status="in-progress", due_at=NOW - timedelta(hours=1)),
        WorkItem(id="soon", title="Soon", status="todo", due_at=NOW + timedelta(hours=3)),
        WorkItem(id="free", title="Free", status="todo"),
    ]
    work_items.completed_items["user-1"] = [
        WorkItem(
            id="done", title="Done", status="completed", completed_at=NOW - timedelta(hours=2)
        ),
        WorkItem(id="old", title="Old", status="completed", completed_at=NOW - timedelta(days=3)),
    ]
    aggregator = DigestAggregator(work_items, renderer)

    composite = await aggregator.build_digest(recipient_factory(), DigestPeriod.DAILY, now=NOW)

    assert composite.type == "digest_daily"
    assert [item["id"] for item in composite.sections["overdue"]] == ["late", "later"]
    assert composite.sections["overdue"][0]["overdue_days"] == 2
    assert [item["id"] for item in composite.sections["due_soon"]] == ["soon"]
    assert [item["id"] for item in composite.sections["completed"]] == ["done"]
    assert composite.stats == {
        "completed": 1,
        "in_progress": 1,
        "due_soon": 1,
        "overdue": 2,
        "assigned": 4,
    }
    assert composite.item_count == 5
    assert work_items.completed_since == [NOW - timedelta(days=1)]
    assert renderer.calls[-1][0] is NotificationType.DIGEST_DAILY


@pytest.mark.asyncio
async def test_hourly_digest_uses_one_hour_window(renderer, work_items, recipient_factory):
    work_items.open_items["user-1"] = [
        WorkItem(id="soon", title="Soon", status="todo", due_at=NOW + timedelta(minutes=30)),
        WorkItem(id="tomorrow", title="Tomorrow", status="todo", due_at=NOW + timedelta(hours=5)),
    ]

    composite = await DigestAggregator(work_items, renderer).build_digest(
        recipient_factory(), DigestPeriod.HOURLY, now=NOW
    )

    assert [item["id"] for item in composite.sections["due_soon"]] == ["soon"]
    assert work_items.completed_since == [NOW - timedelta(hours=1)]


@pytest.mark.asyncio
async def test_surface_context_orders_and_limits(renderer, work_items, recipient_factory):
    work_items.open_items["user-1"] = [
        WorkItem(
            id=f"low-{index}",
            title="Low",
            status="todo",
            priority=NotificationPriority.LOW,
            due_at=NOW + timedelta(days=index + 1),
        )
        for index in range(25)
    ] + [
        WorkItem(
            id="urgent",
            title="Urgent",
            status="todo",
            priority=NotificationPriority.CRITICAL,
            due_at=NOW + timedelta(hours=2),
        ),
        WorkItem(id="overdue", title="Overdue", status="todo", due_at=NOW - timedelta(days=1)),
    ]
    work_items.updated_items["user-1"] = [
        WorkItem(id="touched", title="Touched", status="todo", updated_at=NOW - timedelta(hours=1)),
        WorkItem(id="stale", title="Stale", status="todo", updated_at=NOW - timedelta(days=2)),
    ]
    builder = SurfaceBuilder(work_items, renderer)

    context = await builder.build_context(recipient_factory(), now=NOW)

    assert len(context["assigned"]) == 20
    assert context["assigned"][0]["id"] == "urgent"
    assert [item["id"] for item in context["overdue"]] == ["overdue"]
    assert [item["id"] for item in context["due_today"]] == ["urgent"]
    assert [item["id"] for item in context["recently_updated"]] == ["touched"]
    assert context["counts"]["assigned"] == 27


@pytest.mark.asyncio
async def test_surface_build_renders_surface_update(renderer, work_items, recipient_factory):
    payload = await SurfaceBuilder(work_items, renderer).build(recipient_factory(), now=NOW)

    assert payload["type"] == "surface_update"
    assert renderer.calls[-1][0] is NotificationType.SURFACE_UPDATE
