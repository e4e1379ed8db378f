from .notification import (
    BulkNotificationCreate,
    BulkNotificationResponse,
    NotificationEventBase,
    NotificationEventCreate,
    NotificationInteractionCreate,
    NotificationInteractionRead,
    NotificationRead,
    NotificationSubmitResponse,
)
from .queue import QueueRequestResponse, QueueStatsRead, SweepResponse

__all__ = [
    "BulkNotificationCreate",
    "BulkNotificationResponse",
    "NotificationEventBase",
    "NotificationEventCreate",
    "NotificationInteractionCreate",
    "NotificationInteractionRead",
    "NotificationRead",
    "NotificationSubmitResponse",
    "QueueRequestResponse",
    "QueueStatsRead",
    "SweepResponse",
]
