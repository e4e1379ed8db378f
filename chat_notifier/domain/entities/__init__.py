"""Domain entities exposed by the delivery engine."""

from .event import NotificationEvent
from .notification import (
    DELIVERED_RETENTION,
    FAILED_RETENTION,
    NotificationInteraction,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    PRIORITY_RANKS,
    PRIORITY_WEIGHTS,
    SuppressionReason,
    TERMINAL_STATUSES,
    retry_backoff,
)
from .queue_job import QueueCategory, QueueJob
from .recipient import (
    DigestFrequency,
    DigestPeriod,
    PendingBatchEntry,
    RecipientPreferences,
    RecipientProfile,
    TaskThread,
)
from .work_item import CompositePayload, WorkItem
from .workspace import WorkspaceConfig, WorkspaceHealth

__all__ = [
    "CompositePayload",
    "DELIVERED_RETENTION",
    "DigestFrequency",
    "DigestPeriod",
    "FAILED_RETENTION",
    "NotificationEvent",
    "NotificationInteraction",
    "NotificationPriority",
    "NotificationRecord",
    "NotificationStatus",
    "NotificationType",
    "PRIORITY_RANKS",
    "PRIORITY_WEIGHTS",
    "PendingBatchEntry",
    "QueueCategory",
    "QueueJob",
    "RecipientPreferences",
    "RecipientProfile",
    "SuppressionReason",
    "TERMINAL_STATUSES",
    "TaskThread",
    "WorkItem",
    "WorkspaceConfig",
    "WorkspaceHealth",
    "retry_backoff",
]
