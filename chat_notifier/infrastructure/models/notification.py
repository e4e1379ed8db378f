"""SQLAlchemy model for notification delivery records."""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text

from chat_notifier.infrastructure.database import Base


class NotificationModel(Base):
    """Database representation for one chat notification delivery."""

    __tablename__ = "chat_notification"

    id = Column(String(64), primary_key=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    recipient_id = Column(String(64), nullable=False, index=True)
    app_user_id = Column(String(64), nullable=True, index=True)
    type = Column(String(50), nullable=False)
    priority = Column(String(20), nullable=False)
    channel_id = Column(String(64), nullable=True)
    thread_id = Column(String(64), nullable=True)
    is_threaded = Column(Boolean, nullable=False, default=False)
    payload = Column(JSON, nullable=False, default=dict)
    title = Column(String(255), nullable=False, default="")
    message = Column(Text, nullable=True)
    task_id = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True)
    entity_type = Column(String(50), nullable=True)
    related_board_id = Column(String(64), nullable=True)
    sender_id = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, index=True)
    external_message_id = Column(String(64), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    next_retry_at = Column(DateTime(), nullable=True, index=True)
    last_failure_reason = Column(Text, nullable=True)
    suppressed_reason = Column(String(30), nullable=True)
    rate_limited_at = Column(DateTime(), nullable=True)
    rate_limit_retry_after_ms = Column(Integer, nullable=True)
    interactions = Column(JSON, nullable=False, default=list)
    has_interaction = Column(Boolean, nullable=False, default=False)
    was_batched = Column(Boolean, nullable=False, default=False)
    batch_size = Column(Integer, nullable=True)
    delivery_latency_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(), nullable=True)
    delivered_at = Column(DateTime(), nullable=True)
    failed_at = Column(DateTime(), nullable=True)
    expires_at = Column(DateTime(), nullable=True, index=True)
    version = Column(Integer, nullable=False, default=0)


__all__ = ["NotificationModel"]
