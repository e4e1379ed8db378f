"""Repository implementations for persistence."""

from .notification_repository import NotificationRepository
from .recipient_repository import RecipientRepository
from .workspace_repository import ANALYTICS_COUNTERS, AnalyticsRepository, WorkspaceRepository

__all__ = [
    "ANALYTICS_COUNTERS",
    "AnalyticsRepository",
    "NotificationRepository",
    "RecipientRepository",
    "WorkspaceRepository",
]
