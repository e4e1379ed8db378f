"""Recipient-level decision on whether and when a notification goes out."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from chat_notifier.domain.entities import (
    PRIORITY_RANKS,
    NotificationPriority,
    NotificationType,
    RecipientProfile,
)

DEFAULT_ALWAYS_IMMEDIATE = (
    NotificationType.TASK_ASSIGNED,
    NotificationType.COMMENT_MENTION,
)


class EligibilityDecision(str, Enum):
    ALLOW_IMMEDIATE = "allow_immediate"
    ALLOW_BATCH = "allow_batch"
    DENY = "deny"
    DEFER_QUIET_HOURS = "defer_quiet_hours"


class EligibilityFilter:
    """Pure decision function over recipient state, type and priority."""

    def __init__(
        self, always_immediate_types: Iterable[NotificationType | str] = DEFAULT_ALWAYS_IMMEDIATE
    ) -> None:
        self.always_immediate_types = frozenset(
            NotificationType(value) for value in always_immediate_types
        )

    def evaluate(
        self,
        recipient: RecipientProfile,
        notification_type: NotificationType,
        priority: NotificationPriority,
        *,
        now: datetime,
        force_immediate: bool = False,
    ) -> EligibilityDecision:
        prefs = recipient.preferences
        if not recipient.is_active or not prefs.notifications_enabled:
            return EligibilityDecision.DENY
        if not prefs.allows_type(notification_type):
            return EligibilityDecision.DENY
        if priority.rank < PRIORITY_RANKS.get(prefs.min_priority_level, 0):
            return EligibilityDecision.DENY

        critical = priority is NotificationPriority.CRITICAL
        if force_immediate or critical:
            return EligibilityDecision.ALLOW_IMMEDIATE

        if recipient.is_in_quiet_hours(now):
            return EligibilityDecision.DEFER_QUIET_HOURS

        if prefs.batching_enabled and notification_type not in self.always_immediate_types:
            return EligibilityDecision.ALLOW_BATCH

        return EligibilityDecision.ALLOW_IMMEDIATE


__all__ = ["DEFAULT_ALWAYS_IMMEDIATE", "EligibilityDecision", "EligibilityFilter"]
