"""Public entry points of the notification delivery engine."""

from .batching import BatchAccumulator, summarize_event
from .digests import DIGEST_WINDOWS, DigestAggregator
from .eligibility import EligibilityDecision, EligibilityFilter
from .engine import NotificationEngine
from .handlers import NotificationJobHandlers, new_notification_id
from .surface import SurfaceBuilder, SurfaceRefreshDeduplicator

__all__ = [
    "BatchAccumulator",
    "DIGEST_WINDOWS",
    "DigestAggregator",
    "EligibilityDecision",
    "EligibilityFilter",
    "NotificationEngine",
    "NotificationJobHandlers",
    "SurfaceBuilder",
    "SurfaceRefreshDeduplicator",
    "new_notification_id",
    "summarize_event",
]
