"""Domain entity linking an application user to a chat-platform identity."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum

from chat_notifier.utils import is_time_in_window, to_local

from .notification import NotificationPriority, NotificationType

MAX_PENDING_BATCH = 50
MAX_TASK_THREADS = 1000


class DigestFrequency(str, Enum):
    NEVER = "never"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class DigestPeriod(str, Enum):
    """Period covered by a scheduled digest run."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def notification_type(self) -> NotificationType:
        return NotificationType(f"digest_{self.value}")


# Per-type preference toggles; several event kinds share one toggle.
TYPE_PREFERENCE_FIELDS: dict[NotificationType, str] = {
    NotificationType.TASK_ASSIGNED: "task_assigned",
    NotificationType.TASK_UPDATED: "task_updated",
    NotificationType.TASK_COMPLETED: "task_completed",
    NotificationType.TASK_DELETED: "task_deleted",
    NotificationType.TASK_OVERDUE: "task_overdue",
    NotificationType.TASK_DUE_SOON: "task_due_soon",
    NotificationType.COMMENT_ADDED: "comment_added",
    NotificationType.COMMENT_MENTION: "comment_mention",
    NotificationType.SUBTASK_UPDATED: "subtask_updates",
    NotificationType.PROJECT_CREATED: "project_updates",
    NotificationType.PROJECT_UPDATED: "project_updates",
    NotificationType.TEAM_INVITE: "team_updates",
    NotificationType.ANNOUNCEMENT_CREATED: "announcements",
    NotificationType.REMINDER_DUE_SOON: "reminders",
    NotificationType.STATUS_CHANGE: "status_changes",
}


@dataclass
class RecipientPreferences:
    """Recipient-controlled delivery preferences."""

    notifications_enabled: bool = True
    direct_message_enabled: bool = True
    task_assigned: bool = True
    task_updated: bool = True
    task_completed: bool = True
    task_deleted: bool = True
    task_overdue: bool = True
    task_due_soon: bool = True
    comment_added: bool = True
    comment_mention: bool = True
    subtask_updates: bool = True
    project_updates: bool = True
    team_updates: bool = True
    announcements: bool = True
    reminders: bool = True
    status_changes: bool = True
    min_priority_level: str = "all"
    quiet_hours_enabled: bool = False
    quiet_hours_start: time = time(22, 0)
    quiet_hours_end: time = time(8, 0)
    digest_frequency: DigestFrequency = DigestFrequency.NEVER
    digest_time: time = time(9, 0)
    batching_enabled: bool = True
    batch_interval_minutes: int = 5
    prefer_threaded_replies: bool = True

    def allows_type(self, notification_type: NotificationType) -> bool:
        """Return ``False`` only when the type's toggle is explicitly off."""

        toggle = TYPE_PREFERENCE_FIELDS.get(notification_type)
        if toggle is None:
            return True
        return getattr(self, toggle) is not False


@dataclass
class PendingBatchEntry:
    """Compact summary of a notification waiting in a recipient's batch."""

    type: NotificationType
    title: str
    priority: NotificationPriority
    created_at: datetime
    message: str | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    deferred_for_quiet_hours: bool = False


@dataclass
class TaskThread:
    channel_id: str
    thread_id: str
    last_activity_at: datetime


@dataclass
class RecipientProfile:
    """A recipient as known to the chat platform, with runtime state."""

    id: str
    app_user_id: str
    workspace_id: str
    platform_user_id: str
    timezone: str = "UTC"
    display_name: str | None = None
    dm_channel_id: str | None = None
    preferences: RecipientPreferences = field(default_factory=RecipientPreferences)
    pending_batch: list[PendingBatchEntry] = field(default_factory=list)
    last_batch_flushed_at: datetime | None = None
    task_threads: "OrderedDict[str, TaskThread]" = field(default_factory=OrderedDict)
    interaction_count: int = 0
    last_interaction_at: datetime | None = None
    surface_refreshed_at: datetime | None = None
    is_active: bool = True
    linked_at: datetime | None = None
    unlinked_at: datetime | None = None

    def local_now(self, now: datetime) -> datetime:
        return to_local(now, self.timezone)

    def is_in_quiet_hours(self, now: datetime) -> bool:
        """Return ``True`` when ``now`` falls inside the recipient's quiet hours."""

        prefs = self.preferences
        if not prefs.quiet_hours_enabled:
            return False
        local_time = self.local_now(now).time()
        return is_time_in_window(local_time, prefs.quiet_hours_start, prefs.quiet_hours_end)

    def add_to_batch(
        self, entry: PendingBatchEntry, *, limit: int = MAX_PENDING_BATCH
    ) -> None:
        """Append ``entry``, evicting the oldest entries beyond ``limit``."""

        self.pending_batch.append(entry)
        overflow = len(self.pending_batch) - limit
        if overflow > 0:
            del self.pending_batch[:overflow]

    def clear_batch(self, *, now: datetime, count: int | None = None) -> None:
        """Drop the first ``count`` pending entries (all by default)."""

        if count is None:
            self.pending_batch = []
        else:
            del self.pending_batch[:count]
        self.last_batch_flushed_at = now

    def effective_batch_interval(self, workspace_interval_minutes: int) -> int:
        """The workspace interval, lengthened by the recipient's own preference."""

        return max(workspace_interval_minutes, self.preferences.batch_interval_minutes)

    def is_batch_flush_due(self, interval_minutes: int, now: datetime) -> bool:
        if not self.pending_batch:
            return False
        if self.last_batch_flushed_at is None:
            return True
        elapsed = now - self.last_batch_flushed_at
        return elapsed.total_seconds() >= interval_minutes * 60

    def get_task_thread(self, task_id: str) -> TaskThread | None:
        thread = self.task_threads.get(task_id)
        if thread is not None:
            self.task_threads.move_to_end(task_id)
        return thread

    def set_task_thread(
        self,
        task_id: str,
        channel_id: str,
        thread_id: str,
        *,
        now: datetime,
        limit: int = MAX_TASK_THREADS,
    ) -> None:
        """Remember the thread for ``task_id``, evicting least recently used ones."""

        self.task_threads[task_id] = TaskThread(
            channel_id=channel_id, thread_id=thread_id, last_activity_at=now
        )
        self.task_threads.move_to_end(task_id)
        while len(self.task_threads) > limit:
            self.task_threads.popitem(last=False)

    def record_interaction(self, now: datetime) -> None:
        self.interaction_count += 1
        self.last_interaction_at = now

    def deactivate(self, now: datetime) -> None:
        """Unlink the profile without deleting its history."""

        self.is_active = False
        self.unlinked_at = now

    def is_digest_due(
        self, period: DigestPeriod, tick: datetime, *, weekly_weekday: int = 0
    ) -> bool:
        """Return ``True`` when the digest run for ``period`` at ``tick`` targets us.

        Hourly digests go out on every tick. Daily and weekly digests go out on
        the tick whose local hour matches the preferred digest time; weekly ones
        also require ``tick`` to fall on ``weekly_weekday``.
        """

        if not self.is_active or self.preferences.digest_frequency.value != period.value:
            return False
        if period is DigestPeriod.HOURLY:
            return True
        if period is DigestPeriod.WEEKLY and tick.weekday() != weekly_weekday:
            return False
        return self.local_now(tick).hour == self.preferences.digest_time.hour


__all__ = [
    "DigestFrequency",
    "DigestPeriod",
    "MAX_PENDING_BATCH",
    "MAX_TASK_THREADS",
    "PendingBatchEntry",
    "RecipientPreferences",
    "RecipientProfile",
    "TYPE_PREFERENCE_FIELDS",
    "TaskThread",
]
