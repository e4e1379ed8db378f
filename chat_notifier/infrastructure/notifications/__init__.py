"""Delivery infrastructure: channel guard, work queues and sweep ticker."""

from .channel_guard import ChannelGuard, RateLimitTracker, RetryPolicy
from .scheduler import (
    DedupePolicy,
    InMemoryQueueBackend,
    QueueSettings,
    WorkQueue,
    WorkQueueScheduler,
    queue_settings_from,
)
from .ticker import SweepTicker

__all__ = [
    "ChannelGuard",
    "DedupePolicy",
    "InMemoryQueueBackend",
    "QueueSettings",
    "RateLimitTracker",
    "RetryPolicy",
    "SweepTicker",
    "WorkQueue",
    "WorkQueueScheduler",
    "queue_settings_from",
]
