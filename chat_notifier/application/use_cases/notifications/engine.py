"""Facade exposing the delivery engine to the rest of the application."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from chat_notifier.config import Settings
from chat_notifier.domain.entities import (
    DigestPeriod,
    NotificationEvent,
    NotificationInteraction,
    NotificationRecord,
    QueueCategory,
    RecipientProfile,
    WorkspaceConfig,
)
from chat_notifier.domain.exceptions import NotFoundError, NotificationError
from chat_notifier.domain.ports import (
    ChannelClient,
    PayloadRenderer,
    QueueBackend,
    Store,
    WorkItemSource,
)
from chat_notifier.infrastructure.notifications import (
    ChannelGuard,
    RetryPolicy,
    SweepTicker,
    WorkQueueScheduler,
    queue_settings_from,
)
from chat_notifier.utils import KeyedLock, floor_to_hour, to_local, utc_now

from .batching import BatchAccumulator, summarize_event
from .digests import DigestAggregator
from .eligibility import EligibilityDecision, EligibilityFilter
from .handlers import IdFactory, NotificationJobHandlers, new_notification_id
from .surface import SurfaceBuilder, SurfaceRefreshDeduplicator

logger = logging.getLogger(__name__)


class NotificationEngine:
    """Decide whether, when and where task events reach chat recipients.

    Collaborators are injected; nothing here reads global configuration. The
    composition root builds one engine per process and calls :meth:`start`
    and :meth:`shutdown` around its lifetime.
    """

    def __init__(
        self,
        *,
        store: Store,
        channel: ChannelClient,
        renderer: PayloadRenderer,
        work_items: WorkItemSource,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        id_factory: IdFactory = new_notification_id,
        queue_backend_factory: Callable[[QueueCategory], QueueBackend] | None = None,
    ) -> None:
        self.settings = settings
        self._store = store
        self._renderer = renderer
        self._clock = clock

        self.guard = ChannelGuard(
            store,
            policy=RetryPolicy(
                max_retries=settings.channel_max_retries,
                initial_delay_ms=settings.channel_initial_delay_ms,
                backoff_multiplier=settings.channel_backoff_multiplier,
                max_delay_ms=settings.channel_max_delay_ms,
                default_retry_after_ms=settings.default_rate_limit_retry_after_seconds * 1000,
            ),
            clock=clock,
            sleep=sleep,
            degraded_threshold=settings.workspace_degraded_threshold,
            unhealthy_threshold=settings.workspace_unhealthy_threshold,
        )
        self.eligibility = EligibilityFilter(settings.always_immediate_types)
        self.batches = BatchAccumulator(renderer, max_entries=settings.batch_max_entries)
        self.scheduler = WorkQueueScheduler(
            queue_settings_from(settings),
            backend_factory=queue_backend_factory,
            clock=clock,
        )
        self.surface_refresh = SurfaceRefreshDeduplicator(self.scheduler)
        self._record_locks = KeyedLock()
        self._recipient_locks = KeyedLock()
        self.handlers = NotificationJobHandlers(
            store=store,
            channel=channel,
            guard=self.guard,
            scheduler=self.scheduler,
            batches=self.batches,
            digests=DigestAggregator(work_items, renderer),
            surfaces=SurfaceBuilder(work_items, renderer),
            record_locks=self._record_locks,
            recipient_locks=self._recipient_locks,
            clock=clock,
            id_factory=id_factory,
            max_retries=settings.record_max_retries,
            task_thread_limit=settings.task_thread_limit,
        )
        self.handlers.register()
        self.ticker = SweepTicker(
            batch_sweep=self.run_scheduled_batch_sweep,
            retry_sweep=self.run_retry_sweep,
            digest_run=self.run_scheduled_digest,
            interval_seconds=settings.sweep_interval_seconds,
            clock=clock,
        )

    # ---- Submission ----
    async def submit(self, event: NotificationEvent) -> str | None:
        """Route ``event`` for its user and return the created record id.

        ``None`` means nothing was queued for immediate delivery: the user has
        no linked recipient, the event was filtered, or it went to the batch
        buffer. Malformed events raise :class:`ValidationError`.
        """

        event = event.validated()
        recipient = await self._store.find_recipient_by_user(event.user_id, event.workspace_id)
        if recipient is None:
            logger.debug(
                "No linked recipient for user %s; event %s dropped", event.user_id, event.type.value
            )
            return None
        return await self._submit_for_recipient(recipient, event)

    async def submit_to_many(
        self, user_ids: Iterable[str], event: NotificationEvent
    ) -> dict[str, int]:
        """Fan ``event`` out to several users; reports per-outcome counts."""

        ids = list(dict.fromkeys(str(user_id) for user_id in user_ids if user_id))
        summary = {"successful": 0, "failed": 0, "skipped": 0}
        if not ids:
            return summary

        profiles: dict[str, RecipientProfile] = {}
        for profile in await self._store.find_recipients_by_users(ids):
            if not profile.is_active:
                continue
            if event.workspace_id and profile.workspace_id != event.workspace_id:
                continue
            profiles.setdefault(profile.app_user_id, profile)

        for user_id in ids:
            try:
                user_event = event.for_user(user_id).validated()
                recipient = profiles.get(user_id)
                if recipient is None:
                    summary["skipped"] += 1
                    continue
                notification_id = await self._submit_for_recipient(recipient, user_event)
            except NotificationError as exc:
                summary["failed"] += 1
                logger.warning("Bulk notification for user %s failed: %s", user_id, exc)
                continue
            if notification_id is None:
                summary["skipped"] += 1
            else:
                summary["successful"] += 1

        logger.info(
            "Bulk %s: %s sent, %s skipped, %s failed",
            event.type,
            summary["successful"],
            summary["skipped"],
            summary["failed"],
        )
        return summary

    async def _submit_for_recipient(
        self, recipient: RecipientProfile, event: NotificationEvent
    ) -> str | None:
        if not self.scheduler.accepting:
            logger.warning(
                "Engine is shutting down; event %s for %s dropped", event.type.value, recipient.id
            )
            return None

        workspace = await self._store.load_workspace(recipient.workspace_id)
        if workspace is None or not workspace.accepts_notifications:
            logger.debug("Workspace %s does not accept notifications", recipient.workspace_id)
            return None

        now = self._clock()
        decision = self.eligibility.evaluate(
            recipient,
            event.type,
            event.priority,
            now=now,
            force_immediate=event.force_immediate,
        )
        if decision is EligibilityDecision.ALLOW_BATCH and not workspace.batching_enabled:
            decision = EligibilityDecision.ALLOW_IMMEDIATE

        if decision is EligibilityDecision.DENY:
            logger.debug("Event %s filtered for recipient %s", event.type.value, recipient.id)
            return None

        if decision in (EligibilityDecision.ALLOW_BATCH, EligibilityDecision.DEFER_QUIET_HOURS):
            await self._buffer(recipient, workspace, event, decision, now=now)
            self.surface_refresh.request(recipient.id)
            return None

        record = self._build_record(recipient, workspace, event, now=now)
        await self.handlers.enqueue_record(record)
        self.surface_refresh.request(recipient.id)
        logger.info(
            "Accepted notification %s (%s, %s) for recipient %s",
            record.id,
            record.type.value,
            record.priority.value,
            recipient.id,
        )
        return record.id

    async def _buffer(
        self,
        recipient: RecipientProfile,
        workspace: WorkspaceConfig,
        event: NotificationEvent,
        decision: EligibilityDecision,
        *,
        now: datetime,
    ) -> None:
        deferred = decision is EligibilityDecision.DEFER_QUIET_HOURS
        async with self._recipient_locks.hold(recipient.id):
            fresh = await self._store.load_recipient(recipient.id) or recipient
            self.batches.add(fresh, summarize_event(event, now=now, deferred=deferred))
            await self._store.save_recipient(fresh)
            flush_due = not deferred and self.batches.is_flush_due(
                fresh, fresh.effective_batch_interval(workspace.batch_interval_minutes), now
            )
        logger.debug(
            "Buffered %s for recipient %s (%s pending, deferred=%s)",
            event.type.value,
            recipient.id,
            len(fresh.pending_batch),
            deferred,
        )
        if flush_due:
            self.scheduler.enqueue(QueueCategory.BATCHES, recipient.id)

    def _build_record(
        self,
        recipient: RecipientProfile,
        workspace: WorkspaceConfig,
        event: NotificationEvent,
        *,
        now: datetime,
    ) -> NotificationRecord:
        fields: dict[str, Any] = {}
        thread = None
        if (
            event.task_id
            and workspace.threaded_notifications
            and recipient.preferences.prefer_threaded_replies
        ):
            thread = recipient.get_task_thread(event.task_id)
        if thread is not None:
            fields.update(
                channel_id=thread.channel_id, thread_id=thread.thread_id, is_threaded=True
            )

        context = self._render_context(recipient, event, now=now)
        return self.handlers.new_record(
            recipient,
            event.type,
            event.priority,
            payload=self._renderer.render(event.type, context),
            now=now,
            title=event.display_title,
            message=event.message,
            task_id=event.task_id,
            entity_id=event.subject_id,
            entity_type=event.entity_type or ("task" if event.task_id else None),
            related_board_id=event.board_id,
            sender_id=event.triggered_by,
            **fields,
        )

    @staticmethod
    def _render_context(
        recipient: RecipientProfile, event: NotificationEvent, *, now: datetime
    ) -> dict[str, Any]:
        return {
            **event.context,
            "type": event.type.value,
            "priority": event.priority.value,
            "title": event.display_title,
            "message": event.message,
            "task_id": event.task_id,
            "entity_id": event.subject_id,
            "entity_type": event.entity_type,
            "board_id": event.board_id,
            "triggered_by": event.triggered_by,
            "created_at": now.isoformat(),
            "recipient": {
                "id": recipient.id,
                "platform_user_id": recipient.platform_user_id,
                "display_name": recipient.display_name,
                "timezone": recipient.timezone,
            },
        }

    # ---- Queries and explicit requests ----
    async def get_notification(self, notification_id: str) -> NotificationRecord:
        record = await self._store.load_notification(notification_id)
        if record is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return record

    def request_surface_refresh(self, recipient_id: str) -> bool:
        return self.surface_refresh.request(recipient_id)

    def get_queue_stats(self) -> dict[str, dict[str, int]]:
        return self.scheduler.stats()

    def flush_recipient_batch(self, recipient_id: str, *, force: bool = False) -> bool:
        """Request a batch flush for one recipient, e.g. when quiet hours end."""

        return self.scheduler.enqueue(
            QueueCategory.BATCHES, recipient_id, payload={"force": force}, immediate=force
        )

    async def record_interaction(
        self,
        notification_id: str,
        action_id: str,
        *,
        actor: str | None = None,
        outcome: str | None = None,
    ) -> NotificationInteraction:
        now = self._clock()
        async with self._record_locks.hold(notification_id):
            record = await self.get_notification(notification_id)
            interaction = record.record_interaction(
                action_id, actor=actor, outcome=outcome, now=now
            )
            await self._store.save_notification(record)
        async with self._recipient_locks.hold(record.recipient_id):
            recipient = await self._store.load_recipient(record.recipient_id)
            if recipient is not None:
                recipient.record_interaction(now)
                await self._store.save_recipient(recipient)
        return interaction

    # ---- Scheduled sweeps ----
    async def run_scheduled_batch_sweep(self) -> int:
        """Enqueue a flush for every recipient whose batch interval elapsed.

        The interval is the recipient's workspace setting, lengthened by the
        recipient's own preference.
        """

        now = self._clock()
        workspaces: dict[str, WorkspaceConfig | None] = {}
        queued = 0
        for recipient in await self._store.find_recipients_with_pending_batches(
            timedelta(0), now=now
        ):
            if recipient.workspace_id not in workspaces:
                workspaces[recipient.workspace_id] = await self._store.load_workspace(
                    recipient.workspace_id
                )
            workspace = workspaces[recipient.workspace_id]
            if workspace is None or not workspace.accepts_notifications:
                continue
            interval = recipient.effective_batch_interval(workspace.batch_interval_minutes)
            if not recipient.is_batch_flush_due(interval, now):
                continue
            if recipient.is_in_quiet_hours(now):
                continue
            if self.scheduler.enqueue(QueueCategory.BATCHES, recipient.id):
                queued += 1
        return queued

    async def run_scheduled_digest(
        self, period: DigestPeriod, tick: datetime | None = None
    ) -> int:
        """Enqueue one digest per recipient due at ``tick`` (the current hour)."""

        period = DigestPeriod(period)
        tick = floor_to_hour(tick or self._clock())
        local_tick = to_local(tick, self.settings.app_timezone)
        recipients = await self._store.find_recipients_for_digest(
            period, local_tick, weekly_weekday=self.settings.weekly_digest_weekday
        )
        queued = 0
        for recipient in recipients:
            if self.scheduler.enqueue(
                QueueCategory.DIGESTS,
                recipient.id,
                payload={"period": period.value, "tick": tick.isoformat()},
            ):
                queued += 1
        return queued

    async def run_retry_sweep(self) -> int:
        """Move due pending retries back into the notification queue."""

        now = self._clock()
        queued = 0
        for candidate in await self._store.find_pending_retries(
            self.settings.retry_sweep_limit, now=now
        ):
            async with self._record_locks.hold(candidate.id):
                record = await self._store.load_notification(candidate.id)
                if record is None or not record.is_retry_due(now):
                    continue
                if await self.handlers.enqueue_record(record):
                    queued += 1
        return queued

    # ---- Lifecycle ----
    def start(self) -> None:
        self.ticker.start()
        logger.info("Notification engine started")

    async def shutdown(self) -> None:
        await self.ticker.stop()
        await self.scheduler.shutdown()
        logger.info("Notification engine stopped: %s", self.get_queue_stats())


__all__ = ["NotificationEngine"]
