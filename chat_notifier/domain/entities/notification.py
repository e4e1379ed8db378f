"""Domain entity representing one delivery of a chat notification."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from chat_notifier.domain.exceptions import InvalidTransitionError

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETENTION = timedelta(days=90)
DELIVERED_RETENTION = timedelta(days=30)
FAILED_RETENTION = timedelta(days=7)
RETRY_BASE_DELAY_MS = 1000
RETRY_MAX_DELAY_MS = 60000


class NotificationType(str, Enum):
    """Domain event kinds a recipient can be notified about."""

    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    TASK_DUE_SOON = "task_due_soon"
    TASK_OVERDUE = "task_overdue"
    TASK_CREATED = "task_created"
    TASK_DELETED = "task_deleted"
    TASK_MOVED = "task_moved"
    TASK_COMPLETED = "task_completed"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_PRIORITY_CHANGED = "task_priority_changed"
    SUBTASK_CREATED = "subtask_created"
    SUBTASK_COMPLETED = "subtask_completed"
    SUBTASK_UPDATED = "subtask_updated"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"
    COMMENT_ADDED = "comment_added"
    COMMENT_MENTION = "comment_mention"
    COMMENT_REPLY = "comment_reply"
    TEAM_INVITE = "team_invite"
    TEAM_UPDATE = "team_update"
    USER_REGISTERED = "user_registered"
    USER_ASSIGNED = "user_assigned"
    USER_UNASSIGNED = "user_unassigned"
    ANNOUNCEMENT_CREATED = "announcement_created"
    MODULE_ACCESS = "module_access"
    REMINDER_DUE_SOON = "reminder_due_soon"
    REMINDER_SENT = "reminder_sent"
    DEADLINE_APPROACHING = "deadline_approaching"
    STATUS_CHANGE = "status_change"
    DIGEST_HOURLY = "digest_hourly"
    DIGEST_DAILY = "digest_daily"
    DIGEST_WEEKLY = "digest_weekly"
    BATCH_NOTIFICATION = "batch_notification"
    SURFACE_UPDATE = "surface_update"
    INTERACTIVE_ACTION = "interactive_action"


class NotificationPriority(str, Enum):
    """Urgency of a notification; lower weights drain first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self]

    @property
    def rank(self) -> int:
        return PRIORITY_RANKS[self.value]


PRIORITY_WEIGHTS: dict[NotificationPriority, int] = {
    NotificationPriority.CRITICAL: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.MEDIUM: 3,
    NotificationPriority.LOW: 4,
}

# "all" is a recipient threshold, never a notification priority.
PRIORITY_RANKS: dict[str, int] = {
    "all": 0,
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}


class NotificationStatus(str, Enum):
    """Delivery lifecycle of a :class:`NotificationRecord`."""

    PENDING = "pending"
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BATCHED = "batched"
    SUPPRESSED = "suppressed"
    RATE_LIMITED = "rate_limited"


class SuppressionReason(str, Enum):
    """Why a notification was intentionally not delivered."""

    QUIET_HOURS = "quiet_hours"
    USER_PREFERENCE = "user_preference"
    RATE_LIMIT = "rate_limit"
    DUPLICATE = "duplicate"
    LOW_PRIORITY = "low_priority"
    WORKSPACE_DISABLED = "workspace_disabled"


TERMINAL_STATUSES = frozenset(
    {
        NotificationStatus.DELIVERED,
        NotificationStatus.FAILED,
        NotificationStatus.SUPPRESSED,
        NotificationStatus.RATE_LIMITED,
    }
)

DELIVERABLE_STATUSES = frozenset({NotificationStatus.QUEUED, NotificationStatus.SENT})


def retry_backoff(retry_count: int) -> timedelta:
    """Return the delay before retry number ``retry_count``.

    ``min(1000 * 2**n, 60000)`` milliseconds, so the delay never decreases as
    failures accumulate and tops out at one minute.
    """

    exponent = max(retry_count, 0)
    delay_ms = min(RETRY_BASE_DELAY_MS * (2**exponent), RETRY_MAX_DELAY_MS)
    return timedelta(milliseconds=delay_ms)


@dataclass
class NotificationInteraction:
    """One entry of the append-only interaction log."""

    action_id: str
    actor: str | None
    timestamp: datetime
    outcome: str | None = None


@dataclass
class NotificationRecord:
    """A single "deliver this message to this recipient" instance."""

    id: str
    workspace_id: str
    recipient_id: str
    type: NotificationType
    priority: NotificationPriority
    channel_id: str | None
    payload: dict[str, Any] = field(default_factory=dict)
    app_user_id: str | None = None
    title: str = ""
    message: str | None = None
    thread_id: str | None = None
    is_threaded: bool = False
    task_id: str | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    related_board_id: str | None = None
    sender_id: str | None = None
    status: NotificationStatus = NotificationStatus.PENDING
    external_message_id: str | None = None
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    next_retry_at: datetime | None = None
    last_failure_reason: str | None = None
    suppressed_reason: SuppressionReason | None = None
    rate_limited_at: datetime | None = None
    rate_limit_retry_after_ms: int | None = None
    interactions: list[NotificationInteraction] = field(default_factory=list)
    has_interaction: bool = False
    was_batched: bool = False
    batch_size: int | None = None
    delivery_latency_ms: int | None = None
    created_at: datetime | None = None
    delivered_at: datetime | None = None
    failed_at: datetime | None = None
    expires_at: datetime | None = None
    version: int = 0

    def __post_init__(self) -> None:
        if self.expires_at is None and self.created_at is not None:
            self.expires_at = self.created_at + DEFAULT_RETENTION

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_deliverable(self) -> bool:
        return self.status in DELIVERABLE_STATUSES

    def mark_queued(self) -> None:
        """Record that the notification was accepted into the work queue."""

        self._transition(NotificationStatus.QUEUED)

    def mark_delivered(
        self, external_message_id: str, latency_ms: int | None, *, now: datetime
    ) -> None:
        """Record a successful delivery and keep it around for 30 days."""

        self._transition(NotificationStatus.DELIVERED)
        self.external_message_id = external_message_id
        self.delivered_at = now
        if latency_ms is not None:
            self.delivery_latency_ms = latency_ms
        self.next_retry_at = None
        self.expires_at = now + DELIVERED_RETENTION

    def mark_failed(
        self, reason: str, *, now: datetime, retryable: bool = True
    ) -> bool:
        """Record a failed attempt and decide whether another one is due.

        Returns ``True`` when a retry was scheduled, in which case the record is
        back to ``pending`` with ``next_retry_at`` set.
        """

        self._ensure_open(NotificationStatus.FAILED)
        if self.status != NotificationStatus.FAILED:
            self.retry_count += 1
        self.last_failure_reason = reason
        self.failed_at = now
        self.expires_at = now + FAILED_RETENTION

        if (
            retryable
            and self.status != NotificationStatus.FAILED
            and self.retry_count < self.max_retries
        ):
            self._transition(NotificationStatus.PENDING)
            self.next_retry_at = now + retry_backoff(self.retry_count)
            return True

        self._transition(NotificationStatus.FAILED)
        self.next_retry_at = None
        return False

    def mark_rate_limited(self, retry_after_ms: int, *, now: datetime) -> bool:
        """Record a rate-limited attempt, waiting at least ``retry_after_ms``.

        Exhausting the retry budget through rate limits ends in ``rate_limited``.
        """

        self._ensure_open(NotificationStatus.RATE_LIMITED)
        self.rate_limited_at = now
        self.rate_limit_retry_after_ms = retry_after_ms
        if self.status != NotificationStatus.RATE_LIMITED:
            self.retry_count += 1
        self.last_failure_reason = "rate_limited"
        self.failed_at = now
        self.expires_at = now + FAILED_RETENTION

        if (
            self.status != NotificationStatus.RATE_LIMITED
            and self.retry_count < self.max_retries
        ):
            self._transition(NotificationStatus.PENDING)
            delay = max(
                retry_backoff(self.retry_count),
                timedelta(milliseconds=max(retry_after_ms, 0)),
            )
            self.next_retry_at = now + delay
            return True

        self._transition(NotificationStatus.RATE_LIMITED)
        self.next_retry_at = None
        return False

    def suppress(self, reason: SuppressionReason, *, now: datetime) -> None:
        """Stop the record from ever being delivered."""

        self._transition(NotificationStatus.SUPPRESSED)
        self.suppressed_reason = reason
        self.next_retry_at = None
        self.expires_at = now + FAILED_RETENTION

    def record_interaction(
        self,
        action_id: str,
        *,
        actor: str | None,
        outcome: str | None,
        now: datetime,
    ) -> NotificationInteraction:
        interaction = NotificationInteraction(
            action_id=action_id, actor=actor, timestamp=now, outcome=outcome
        )
        self.interactions.append(interaction)
        self.has_interaction = True
        return interaction

    def is_retry_due(self, now: datetime) -> bool:
        """Return ``True`` when the retry sweep should pick this record up."""

        return (
            self.status == NotificationStatus.PENDING
            and 0 < self.retry_count < self.max_retries
            and self.next_retry_at is not None
            and self.next_retry_at <= now
        )

    def _ensure_open(self, target: NotificationStatus) -> None:
        if self.is_terminal and target != self.status:
            raise InvalidTransitionError(
                f"Notification {self.id} is {self.status.value} and cannot become {target.value}"
            )

    def _transition(self, target: NotificationStatus) -> None:
        self._ensure_open(target)
        self.status = target
        self.version += 1


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DELIVERED_RETENTION",
    "FAILED_RETENTION",
    "NotificationInteraction",
    "NotificationPriority",
    "NotificationRecord",
    "NotificationStatus",
    "NotificationType",
    "PRIORITY_RANKS",
    "PRIORITY_WEIGHTS",
    "SuppressionReason",
    "TERMINAL_STATUSES",
    "retry_backoff",
]
