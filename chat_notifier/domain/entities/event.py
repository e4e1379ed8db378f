"""Domain event submitted to the delivery engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from chat_notifier.domain.exceptions import ValidationError

from .notification import NotificationPriority, NotificationType


@dataclass
class NotificationEvent:
    """Something happened in the task application that a user may hear about."""

    type: NotificationType
    user_id: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    workspace_id: str | None = None
    title: str | None = None
    message: str | None = None
    task_id: str | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    board_id: str | None = None
    triggered_by: str | None = None
    force_immediate: bool = False
    context: dict[str, Any] = field(default_factory=dict)

    def for_user(self, user_id: str) -> "NotificationEvent":
        return replace(self, user_id=user_id, context=dict(self.context))

    @property
    def subject_id(self) -> str | None:
        return self.entity_id or self.task_id

    @property
    def display_title(self) -> str:
        return self.title or self.message or self.type.value.replace("_", " ").capitalize()

    def validated(self) -> "NotificationEvent":
        """Return a copy with coerced enums or raise :class:`ValidationError`."""

        try:
            notification_type = NotificationType(self.type)
        except ValueError as exc:
            raise ValidationError(f"Unknown notification type '{self.type}'") from exc
        try:
            priority = NotificationPriority(self.priority or NotificationPriority.MEDIUM)
        except ValueError as exc:
            raise ValidationError(f"Unknown notification priority '{self.priority}'") from exc
        if not self.user_id or not str(self.user_id).strip():
            raise ValidationError("A notification event requires a target user id")
        if not isinstance(self.context, dict):
            raise ValidationError("Notification context must be a mapping")
        return replace(self, type=notification_type, priority=priority, user_id=str(self.user_id))


__all__ = ["NotificationEvent"]
