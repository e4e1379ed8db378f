"""ORM models used by the application infrastructure."""

from .notification import NotificationModel
from .recipient import RecipientModel
from .workspace import AnalyticsModel, WorkspaceModel

__all__ = [
    "AnalyticsModel",
    "NotificationModel",
    "RecipientModel",
    "WorkspaceModel",
]
