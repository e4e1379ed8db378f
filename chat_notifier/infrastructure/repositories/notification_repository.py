"""Persistence helpers for notification delivery records."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy.orm import Session

from chat_notifier.domain.entities import (
    NotificationInteraction,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    SuppressionReason,
)
from chat_notifier.infrastructure.models import NotificationModel

from ._datetimes import from_db_datetime, to_db_datetime


class NotificationRepository:
    """Provide load/save operations for :class:`NotificationRecord` objects."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, notification_id: str) -> NotificationRecord | None:
        model = self.session.get(NotificationModel, notification_id)
        if model is None:
            return None
        return self._to_entity(model)

    def save(self, record: NotificationRecord) -> NotificationRecord:
        model = self.session.get(NotificationModel, record.id)
        if model is None:
            model = NotificationModel(id=record.id)
        self._apply_entity_to_model(model, record)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def list_pending_retries(self, *, limit: int, now: datetime) -> Sequence[NotificationRecord]:
        query = (
            self.session.query(NotificationModel)
            .filter(NotificationModel.status == NotificationStatus.PENDING.value)
            .filter(NotificationModel.retry_count > 0)
            .filter(NotificationModel.retry_count < NotificationModel.max_retries)
            .filter(NotificationModel.next_retry_at.is_not(None))
            .filter(NotificationModel.next_retry_at <= to_db_datetime(now))
            .order_by(NotificationModel.next_retry_at.asc(), NotificationModel.id.asc())
            .limit(limit)
        )
        return [self._to_entity(model) for model in query.all()]

    @staticmethod
    def _apply_entity_to_model(model: NotificationModel, record: NotificationRecord) -> None:
        model.workspace_id = record.workspace_id
        model.recipient_id = record.recipient_id
        model.app_user_id = record.app_user_id
        model.type = record.type.value
        model.priority = record.priority.value
        model.channel_id = record.channel_id
        model.thread_id = record.thread_id
        model.is_threaded = record.is_threaded
        model.payload = record.payload or {}
        model.title = record.title
        model.message = record.message
        model.task_id = record.task_id
        model.entity_id = record.entity_id
        model.entity_type = record.entity_type
        model.related_board_id = record.related_board_id
        model.sender_id = record.sender_id
        model.status = record.status.value
        model.external_message_id = record.external_message_id
        model.retry_count = record.retry_count
        model.max_retries = record.max_retries
        model.next_retry_at = to_db_datetime(record.next_retry_at)
        model.last_failure_reason = record.last_failure_reason
        model.suppressed_reason = (
            record.suppressed_reason.value if record.suppressed_reason else None
        )
        model.rate_limited_at = to_db_datetime(record.rate_limited_at)
        model.rate_limit_retry_after_ms = record.rate_limit_retry_after_ms
        model.interactions = [
            {
                "action_id": interaction.action_id,
                "actor": interaction.actor,
                "timestamp": interaction.timestamp.isoformat(),
                "outcome": interaction.outcome,
            }
            for interaction in record.interactions
        ]
        model.has_interaction = record.has_interaction
        model.was_batched = record.was_batched
        model.batch_size = record.batch_size
        model.delivery_latency_ms = record.delivery_latency_ms
        model.created_at = to_db_datetime(record.created_at)
        model.delivered_at = to_db_datetime(record.delivered_at)
        model.failed_at = to_db_datetime(record.failed_at)
        model.expires_at = to_db_datetime(record.expires_at)
        model.version = record.version

    @staticmethod
    def _to_entity(model: NotificationModel) -> NotificationRecord:
        return NotificationRecord(
            id=model.id,
            workspace_id=model.workspace_id,
            recipient_id=model.recipient_id,
            app_user_id=model.app_user_id,
            type=NotificationType(model.type),
            priority=NotificationPriority(model.priority),
            channel_id=model.channel_id,
            thread_id=model.thread_id,
            is_threaded=bool(model.is_threaded),
            payload=dict(model.payload or {}),
            title=model.title or "",
            message=model.message,
            task_id=model.task_id,
            entity_id=model.entity_id,
            entity_type=model.entity_type,
            related_board_id=model.related_board_id,
            sender_id=model.sender_id,
            status=NotificationStatus(model.status),
            external_message_id=model.external_message_id,
            retry_count=model.retry_count,
            max_retries=model.max_retries,
            next_retry_at=from_db_datetime(model.next_retry_at),
            last_failure_reason=model.last_failure_reason,
            suppressed_reason=(
                SuppressionReason(model.suppressed_reason) if model.suppressed_reason else None
            ),
            rate_limited_at=from_db_datetime(model.rate_limited_at),
            rate_limit_retry_after_ms=model.rate_limit_retry_after_ms,
            interactions=[
                NotificationInteraction(
                    action_id=item["action_id"],
                    actor=item.get("actor"),
                    timestamp=from_db_datetime(datetime.fromisoformat(item["timestamp"])),
                    outcome=item.get("outcome"),
                )
                for item in model.interactions or []
            ],
            has_interaction=bool(model.has_interaction),
            was_batched=bool(model.was_batched),
            batch_size=model.batch_size,
            delivery_latency_ms=model.delivery_latency_ms,
            created_at=from_db_datetime(model.created_at),
            delivered_at=from_db_datetime(model.delivered_at),
            failed_at=from_db_datetime(model.failed_at),
            expires_at=from_db_datetime(model.expires_at),
            version=model.version,
        )


__all__ = ["NotificationRepository"]
