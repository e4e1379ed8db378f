"""Tests for the in-process work queues."""

from __future__ import annotations

import asyncio

import pytest

from chat_notifier.config import Settings
from chat_notifier.domain.entities import QueueCategory
from chat_notifier.infrastructure.notifications import (
    DedupePolicy,
    QueueSettings,
    WorkQueue,
    WorkQueueScheduler,
    queue_settings_from,
)
from chat_notifier.infrastructure.notifications.scheduler import SHUTDOWN_ORDER


class RecordingHandler:
    def __init__(self, fail_keys: set[str] | None = None) -> None:
        self.seen: list[str] = []
        self.payloads: list[dict] = []
        self.fail_keys = fail_keys or set()

    async def __call__(self, job) -> None:
        self.seen.append(job.key)
        self.payloads.append(job.payload)
        if job.key in self.fail_keys:
            raise RuntimeError(f"boom {job.key}")


def _queue(handler, **config) -> WorkQueue:
    return WorkQueue(QueueCategory.NOTIFICATIONS, handler, config=QueueSettings(**config))


@pytest.mark.asyncio
async def test_lower_weight_drains_first():
    handler = RecordingHandler()
    queue = _queue(handler, concurrency=1)

    queue.enqueue("medium-1", weight=3)
    queue.enqueue("low", weight=4)
    queue.enqueue("critical", weight=1, immediate=True)
    queue.enqueue("medium-2", weight=3)
    await queue.flush()

    assert handler.seen == ["critical", "medium-1", "medium-2", "low"]
    assert queue.stats() == {"waiting": 0, "completed": 4, "failed": 0}


@pytest.mark.asyncio
async def test_debounced_queue_drains_after_delay():
    handler = RecordingHandler()
    queue = _queue(handler, delay_seconds=0.01)

    queue.enqueue("a")
    assert handler.seen == []
    await asyncio.sleep(0.05)

    assert handler.seen == ["a"]


@pytest.mark.asyncio
async def test_immediate_job_skips_debounce():
    handler = RecordingHandler()
    queue = _queue(handler, delay_seconds=30)

    queue.enqueue("critical", weight=1, immediate=True)
    await asyncio.sleep(0.01)

    assert handler.seen == ["critical"]


@pytest.mark.asyncio
async def test_skip_if_pending_drops_duplicates():
    handler = RecordingHandler()
    queue = _queue(handler, dedupe=DedupePolicy.SKIP_IF_PENDING)

    assert queue.enqueue("R1") is True
    assert queue.enqueue("R1") is False
    assert queue.enqueue("R2") is True
    await queue.flush()

    assert handler.seen == ["R1", "R2"]
    assert queue.enqueue("R1") is True


@pytest.mark.asyncio
async def test_replace_pending_keeps_latest_payload():
    handler = RecordingHandler()
    queue = _queue(handler, dedupe=DedupePolicy.REPLACE_PENDING)

    queue.enqueue("R1", payload={"n": 1})
    queue.enqueue("R1", payload={"n": 2})
    await queue.flush()

    assert handler.seen == ["R1"]
    assert handler.payloads == [{"n": 2}]


@pytest.mark.asyncio
async def test_failing_job_does_not_abort_siblings():
    handler = RecordingHandler(fail_keys={"bad"})
    queue = _queue(handler, concurrency=3)

    for key in ("ok-1", "bad", "ok-2"):
        queue.enqueue(key)
    await queue.flush()

    assert sorted(handler.seen) == ["bad", "ok-1", "ok-2"]
    assert queue.stats() == {"waiting": 0, "completed": 2, "failed": 1}


@pytest.mark.asyncio
async def test_concurrency_bounds_parallel_jobs():
    running = 0
    peak = 0

    async def handler(job) -> None:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0)
        running -= 1

    queue = _queue(handler, concurrency=2)
    for index in range(5):
        queue.enqueue(f"job-{index}")
    await queue.flush()

    assert peak == 2
    assert queue.completed == 5


@pytest.mark.asyncio
async def test_scheduler_dispatches_by_category():
    notifications = RecordingHandler()
    analytics = RecordingHandler()
    scheduler = WorkQueueScheduler()
    scheduler.register(QueueCategory.NOTIFICATIONS, notifications)
    scheduler.register(QueueCategory.ANALYTICS, analytics)

    scheduler.enqueue(QueueCategory.NOTIFICATIONS, "N1")
    scheduler.enqueue(QueueCategory.ANALYTICS, "A1")
    await scheduler.run_until_idle()

    assert notifications.seen == ["N1"]
    assert analytics.seen == ["A1"]
    assert scheduler.stats()["analytics"]["completed"] == 1
    with pytest.raises(LookupError):
        scheduler.queue(QueueCategory.DIGESTS)


@pytest.mark.asyncio
async def test_shutdown_drains_upstream_first_and_rejects_new_jobs():
    order: list[str] = []
    scheduler = WorkQueueScheduler(
        {QueueCategory.NOTIFICATIONS: QueueSettings(delay_seconds=30)}
    )

    async def batch_handler(job) -> None:
        order.append(f"batch:{job.key}")
        # Upstream work may still feed the notification queue while closing.
        scheduler.enqueue(QueueCategory.NOTIFICATIONS, f"from-{job.key}")

    async def notification_handler(job) -> None:
        order.append(f"notification:{job.key}")

    scheduler.register(QueueCategory.BATCHES, batch_handler)
    scheduler.register(QueueCategory.NOTIFICATIONS, notification_handler)
    scheduler.enqueue(QueueCategory.NOTIFICATIONS, "N1")
    scheduler.enqueue(QueueCategory.BATCHES, "R1")

    await scheduler.shutdown()

    assert order == ["batch:R1", "notification:N1", "notification:from-R1"]
    assert not scheduler.accepting
    assert scheduler.enqueue(QueueCategory.NOTIFICATIONS, "late") is False


def test_shutdown_order_covers_every_category():
    assert set(SHUTDOWN_ORDER) == set(QueueCategory)
    assert SHUTDOWN_ORDER.index(QueueCategory.BATCHES) < SHUTDOWN_ORDER.index(
        QueueCategory.NOTIFICATIONS
    )


def test_queue_settings_follow_configuration():
    configs = queue_settings_from(
        Settings(_env_file=None, batch_delay_ms=2000, surface_concurrency=7)
    )

    assert configs[QueueCategory.BATCHES].delay_seconds == 2.0
    assert configs[QueueCategory.BATCHES].dedupe is DedupePolicy.SKIP_IF_PENDING
    assert configs[QueueCategory.SURFACE_REFRESH].dedupe is DedupePolicy.REPLACE_PENDING
    assert configs[QueueCategory.SURFACE_REFRESH].concurrency == 7
    assert configs[QueueCategory.NOTIFICATIONS].delay_seconds == 0.1
