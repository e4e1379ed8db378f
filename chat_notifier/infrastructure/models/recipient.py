"""SQLAlchemy model for chat recipient profiles."""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String

from chat_notifier.infrastructure.database import Base


class RecipientModel(Base):
    """Link between an application user and a chat-platform identity.

    Preferences, the pending batch and the task-thread map are stored as JSON
    documents on the row.
    """

    __tablename__ = "chat_recipient"

    id = Column(String(64), primary_key=True)
    app_user_id = Column(String(64), nullable=False, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    platform_user_id = Column(String(64), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    display_name = Column(String(255), nullable=True)
    dm_channel_id = Column(String(64), nullable=True)
    preferences = Column(JSON, nullable=False, default=dict)
    pending_batch = Column(JSON, nullable=False, default=list)
    pending_batch_size = Column(Integer, nullable=False, default=0, index=True)
    last_batch_flushed_at = Column(DateTime(), nullable=True)
    task_threads = Column(JSON, nullable=False, default=list)
    digest_frequency = Column(String(20), nullable=False, default="never", index=True)
    interaction_count = Column(Integer, nullable=False, default=0)
    last_interaction_at = Column(DateTime(), nullable=True)
    surface_refreshed_at = Column(DateTime(), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    linked_at = Column(DateTime(), nullable=True)
    unlinked_at = Column(DateTime(), nullable=True)


__all__ = ["RecipientModel"]
