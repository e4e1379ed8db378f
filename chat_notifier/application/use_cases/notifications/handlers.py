"""Queue job handlers for every work category of the delivery engine."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from chat_notifier.domain.entities import (
    CompositePayload,
    DigestPeriod,
    NotificationPriority,
    NotificationRecord,
    NotificationType,
    QueueCategory,
    QueueJob,
    RecipientProfile,
    SuppressionReason,
)
from chat_notifier.domain.entities.recipient import MAX_TASK_THREADS
from chat_notifier.domain.exceptions import ChannelError, RateLimitedError
from chat_notifier.domain.ports import ChannelClient, Store
from chat_notifier.infrastructure.notifications.channel_guard import ChannelGuard
from chat_notifier.infrastructure.notifications.scheduler import WorkQueueScheduler
from chat_notifier.utils import KeyedLock, ensure_utc, floor_to_hour, start_of_day, utc_now

from .batching import BatchAccumulator
from .digests import DigestAggregator
from .surface import SurfaceBuilder

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def new_notification_id() -> str:
    return uuid.uuid4().hex


class NotificationJobHandlers:
    """Work performed by the drain loops of the five queues.

    Handlers raise on unexpected errors so the scheduler can log and count the
    failure; channel errors on single notifications are absorbed into the
    record state machine instead.
    """

    def __init__(
        self,
        *,
        store: Store,
        channel: ChannelClient,
        guard: ChannelGuard,
        scheduler: WorkQueueScheduler,
        batches: BatchAccumulator,
        digests: DigestAggregator,
        surfaces: SurfaceBuilder,
        record_locks: KeyedLock,
        recipient_locks: KeyedLock,
        clock: Callable[[], datetime] = utc_now,
        id_factory: IdFactory = new_notification_id,
        max_retries: int = 3,
        task_thread_limit: int = MAX_TASK_THREADS,
    ) -> None:
        self._store = store
        self._channel = channel
        self._guard = guard
        self._scheduler = scheduler
        self._batches = batches
        self._digests = digests
        self._surfaces = surfaces
        self._record_locks = record_locks
        self._recipient_locks = recipient_locks
        self._clock = clock
        self._id_factory = id_factory
        self._max_retries = max_retries
        self._task_thread_limit = task_thread_limit

    def register(self) -> None:
        """Wire each handler into the scheduler's dispatch table."""

        self._scheduler.register(QueueCategory.NOTIFICATIONS, self.process_notification)
        self._scheduler.register(QueueCategory.BATCHES, self.process_batch)
        self._scheduler.register(QueueCategory.DIGESTS, self.process_digest)
        self._scheduler.register(QueueCategory.SURFACE_REFRESH, self.process_surface_refresh)
        self._scheduler.register(QueueCategory.ANALYTICS, self.record_analytics)

    # ---- Record helpers shared with the engine ----
    def new_record(
        self,
        recipient: RecipientProfile,
        notification_type: NotificationType,
        priority: NotificationPriority,
        *,
        payload: dict[str, Any],
        now: datetime,
        **fields: Any,
    ) -> NotificationRecord:
        return NotificationRecord(
            id=self._id_factory(),
            workspace_id=recipient.workspace_id,
            recipient_id=recipient.id,
            app_user_id=recipient.app_user_id,
            type=notification_type,
            priority=priority,
            channel_id=fields.pop("channel_id", recipient.dm_channel_id),
            payload=payload,
            max_retries=self._max_retries,
            created_at=now,
            **fields,
        )

    async def enqueue_record(self, record: NotificationRecord) -> bool:
        """Move ``record`` to ``queued``, persist it and hand it to the queue."""

        record.mark_queued()
        await self._store.save_notification(record)
        accepted = self._scheduler.enqueue(
            QueueCategory.NOTIFICATIONS,
            record.id,
            weight=record.priority.weight,
            immediate=record.priority is NotificationPriority.CRITICAL,
        )
        if not accepted:
            logger.warning("Notification %s stored but not queued", record.id)
        return accepted

    def track(self, workspace_id: str, counters: dict[str, int]) -> None:
        """Enqueue an analytics increment; never raises."""

        try:
            self._scheduler.enqueue(
                QueueCategory.ANALYTICS,
                uuid.uuid4().hex,
                payload={
                    "workspace_id": workspace_id,
                    "counters": counters,
                    "at": self._clock().isoformat(),
                },
            )
        except Exception:
            logger.warning(
                "Could not enqueue analytics for workspace %s", workspace_id, exc_info=True
            )

    # ---- Single notifications ----
    async def process_notification(self, job: QueueJob) -> None:
        async with self._record_locks.hold(job.key):
            record = await self._store.load_notification(job.key)
            if record is None:
                logger.warning("Notification %s vanished before delivery", job.key)
                return
            if not record.is_deliverable:
                logger.debug("Notification %s is %s; skipping", record.id, record.status.value)
                return
            await self._deliver(record)

    async def _deliver(self, record: NotificationRecord) -> None:
        workspace = await self._store.load_workspace(record.workspace_id)
        if workspace is None or not workspace.accepts_notifications:
            record.suppress(SuppressionReason.WORKSPACE_DISABLED, now=self._clock())
            await self._store.save_notification(record)
            logger.warning(
                "Notification %s suppressed: workspace %s disabled", record.id, record.workspace_id
            )
            return

        recipient = await self._store.load_recipient(record.recipient_id)
        if recipient is None or not recipient.is_active:
            record.suppress(SuppressionReason.USER_PREFERENCE, now=self._clock())
            await self._store.save_notification(record)
            logger.warning(
                "Notification %s suppressed: recipient %s inactive", record.id, record.recipient_id
            )
            return

        workspace_id = record.workspace_id
        started = self._clock()
        try:
            if not record.channel_id:
                record.channel_id = await self._direct_channel(recipient)
            channel_id = record.channel_id
            result = await self._guard.execute(
                workspace_id,
                lambda: self._channel.send(
                    workspace_id, channel_id, record.payload, thread_id=record.thread_id
                ),
            )
        except RateLimitedError as exc:
            retrying = record.mark_rate_limited(exc.retry_after_ms, now=self._clock())
            await self._store.save_notification(record)
            logger.warning(
                "Notification %s rate limited (retry %s/%s, retrying=%s)",
                record.id,
                record.retry_count,
                record.max_retries,
                retrying,
            )
            self.track(workspace_id, {"errors": 1} if retrying else {"errors": 1, "failed": 1})
            return
        except ChannelError as exc:
            retrying = record.mark_failed(str(exc), now=self._clock(), retryable=not exc.terminal)
            await self._store.save_notification(record)
            if retrying:
                logger.warning(
                    "Notification %s failed (%s); retry %s/%s scheduled for %s",
                    record.id,
                    exc.code,
                    record.retry_count,
                    record.max_retries,
                    record.next_retry_at,
                )
            else:
                logger.error("Notification %s failed permanently: %s", record.id, exc)
            self.track(workspace_id, {"errors": 1} if retrying else {"errors": 1, "failed": 1})
            return

        now = self._clock()
        latency_ms = result.latency_ms
        if latency_ms is None:
            latency_ms = int((now - started).total_seconds() * 1000)
        record.mark_delivered(result.external_id, latency_ms, now=now)
        await self._store.save_notification(record)
        logger.info(
            "Delivered notification %s (%s) to %s in %sms",
            record.id,
            record.type.value,
            record.recipient_id,
            latency_ms,
        )
        self.track(workspace_id, {"sent": 1, "delivered": 1})

        if record.task_id and not record.is_threaded and workspace.threaded_notifications:
            await self._remember_thread(record, result.external_id)

    async def _direct_channel(self, recipient: RecipientProfile) -> str:
        if recipient.dm_channel_id:
            return recipient.dm_channel_id
        workspace_id = recipient.workspace_id
        channel_id = await self._guard.execute(
            workspace_id,
            lambda: self._channel.open_direct_channel(workspace_id, recipient.platform_user_id),
        )
        async with self._recipient_locks.hold(recipient.id):
            fresh = await self._store.load_recipient(recipient.id)
            if fresh is not None and not fresh.dm_channel_id:
                fresh.dm_channel_id = channel_id
                await self._store.save_recipient(fresh)
        recipient.dm_channel_id = channel_id
        return channel_id

    async def _remember_thread(self, record: NotificationRecord, thread_id: str) -> None:
        assert record.task_id is not None and record.channel_id is not None
        async with self._recipient_locks.hold(record.recipient_id):
            recipient = await self._store.load_recipient(record.recipient_id)
            if recipient is None or not recipient.preferences.prefer_threaded_replies:
                return
            if recipient.get_task_thread(record.task_id) is not None:
                return
            recipient.set_task_thread(
                record.task_id,
                record.channel_id,
                thread_id,
                now=self._clock(),
                limit=self._task_thread_limit,
            )
            await self._store.save_recipient(recipient)

    # ---- Composite deliveries ----
    async def process_batch(self, job: QueueJob) -> None:
        force = bool(job.payload.get("force"))
        async with self._recipient_locks.hold(job.key):
            recipient = await self._store.load_recipient(job.key)
            if recipient is None or not recipient.is_active:
                logger.debug("Batch for recipient %s skipped: inactive", job.key)
                return
            workspace = await self._store.load_workspace(recipient.workspace_id)
            if workspace is None or not workspace.accepts_notifications:
                logger.debug("Batch for recipient %s skipped: workspace disabled", job.key)
                return
            now = self._clock()
            if not force and recipient.is_in_quiet_hours(now):
                logger.debug("Batch for recipient %s held for quiet hours", job.key)
                return

            composite = self._batches.compose(recipient)
            if composite is None:
                return
            record = self._composite_record(
                recipient,
                composite,
                NotificationType.BATCH_NOTIFICATION,
                now=now,
                was_batched=True,
                batch_size=composite.item_count,
            )
            await self._store.save_notification(record)
            recipient.clear_batch(now=now, count=composite.item_count)
            await self._store.save_recipient(recipient)

        logger.info(
            "Flushed %s batched notification(s) for recipient %s", composite.item_count, job.key
        )
        await self.enqueue_record(record)

    async def process_digest(self, job: QueueJob) -> None:
        period = DigestPeriod(job.payload["period"])
        recipient = await self._store.load_recipient(job.key)
        if recipient is None or not recipient.is_active:
            logger.debug("Digest for recipient %s skipped: inactive", job.key)
            return
        workspace = await self._store.load_workspace(recipient.workspace_id)
        if workspace is None or not workspace.accepts_notifications or not workspace.digest_enabled:
            logger.debug("Digest for recipient %s skipped: workspace disabled", job.key)
            return

        now = self._clock()
        composite = await self._digests.build_digest(recipient, period, now=now)
        record = self._composite_record(
            recipient, composite, period.notification_type, now=now
        )
        await self.enqueue_record(record)
        logger.info("Queued %s digest %s for recipient %s", period.value, record.id, job.key)

    def _composite_record(
        self,
        recipient: RecipientProfile,
        composite: CompositePayload,
        notification_type: NotificationType,
        *,
        now: datetime,
        **fields: Any,
    ) -> NotificationRecord:
        return self.new_record(
            recipient,
            notification_type,
            NotificationPriority.MEDIUM,
            payload=composite.payload,
            now=now,
            title=composite.title,
            **fields,
        )

    # ---- Surfaces and analytics ----
    async def process_surface_refresh(self, job: QueueJob) -> None:
        recipient = await self._store.load_recipient(job.key)
        if recipient is None or not recipient.is_active:
            return
        workspace = await self._store.load_workspace(recipient.workspace_id)
        if workspace is None or not workspace.is_active or not workspace.surface_enabled:
            logger.debug("Surface refresh for %s skipped: feature disabled", job.key)
            return

        now = self._clock()
        surface = await self._surfaces.build(recipient, now=now)
        workspace_id = recipient.workspace_id
        await self._guard.execute(
            workspace_id,
            lambda: self._channel.publish_surface(
                workspace_id, recipient.platform_user_id, surface
            ),
        )
        async with self._recipient_locks.hold(recipient.id):
            fresh = await self._store.load_recipient(recipient.id)
            if fresh is not None:
                fresh.surface_refreshed_at = now
                await self._store.save_recipient(fresh)

    async def record_analytics(self, job: QueueJob) -> None:
        payload = job.payload
        try:
            at = ensure_utc(datetime.fromisoformat(payload["at"]))
            assert at is not None
            workspace_id = payload["workspace_id"]
            counters = dict(payload["counters"])
            await self._store.increment_analytics(
                workspace_id, period="hourly", period_start=floor_to_hour(at), counters=counters
            )
            await self._store.increment_analytics(
                workspace_id, period="daily", period_start=start_of_day(at), counters=counters
            )
        except Exception:
            logger.warning("Analytics update %s dropped", job.key, exc_info=True)


__all__ = ["NotificationJobHandlers", "new_notification_id"]
