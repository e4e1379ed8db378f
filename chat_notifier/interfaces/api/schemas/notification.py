"""Pydantic models describing notification delivery payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chat_notifier.domain.entities import (
    NotificationEvent,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    SuppressionReason,
)


class NotificationEventBase(BaseModel):
    """Fields shared by single and bulk event submissions."""

    model_config = ConfigDict(extra="forbid")

    type: NotificationType
    priority: NotificationPriority = NotificationPriority.MEDIUM
    workspace_id: str | None = None
    title: str | None = Field(default=None, max_length=255)
    message: str | None = None
    task_id: str | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    board_id: str | None = None
    triggered_by: str | None = None
    force_immediate: bool = False
    context: dict[str, Any] = Field(default_factory=dict)

    def to_event(self, user_id: str | None = None) -> NotificationEvent:
        data = self.model_dump()
        return NotificationEvent(user_id=user_id, **data)


class NotificationEventCreate(NotificationEventBase):
    user_id: str = Field(..., min_length=1)

    def to_event(self, user_id: str | None = None) -> NotificationEvent:
        data = self.model_dump(exclude={"user_id"})
        return NotificationEvent(user_id=user_id or self.user_id, **data)


class BulkNotificationCreate(BaseModel):
    user_ids: list[str] = Field(..., min_length=1)
    event: NotificationEventBase


class NotificationSubmitResponse(BaseModel):
    notification_id: str | None
    queued: bool


class BulkNotificationResponse(BaseModel):
    successful: int
    failed: int
    skipped: int


class NotificationInteractionCreate(BaseModel):
    action_id: str = Field(..., min_length=1)
    actor: str | None = None
    outcome: str | None = None


class NotificationInteractionRead(BaseModel):
    action_id: str
    actor: str | None
    timestamp: datetime
    outcome: str | None


class NotificationRead(BaseModel):
    """Delivery state of one notification record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    recipient_id: str
    type: NotificationType
    priority: NotificationPriority
    status: NotificationStatus
    title: str
    channel_id: str | None
    thread_id: str | None
    external_message_id: str | None
    retry_count: int
    max_retries: int
    next_retry_at: datetime | None
    last_failure_reason: str | None
    suppressed_reason: SuppressionReason | None
    was_batched: bool
    batch_size: int | None
    has_interaction: bool
    delivery_latency_ms: int | None
    created_at: datetime | None
    delivered_at: datetime | None
    failed_at: datetime | None
    expires_at: datetime | None

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationRead":
        return cls.model_validate(record)


__all__ = [
    "BulkNotificationCreate",
    "BulkNotificationResponse",
    "NotificationEventBase",
    "NotificationEventCreate",
    "NotificationInteractionCreate",
    "NotificationInteractionRead",
    "NotificationRead",
    "NotificationSubmitResponse",
]
