"""SQLAlchemy models for chat workspaces and their delivery analytics."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)

from chat_notifier.infrastructure.database import Base


class WorkspaceModel(Base):
    __tablename__ = "chat_workspace"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    threaded_notifications = Column(Boolean, nullable=False, default=True)
    batching_enabled = Column(Boolean, nullable=False, default=True)
    batch_interval_minutes = Column(Integer, nullable=False, default=5)
    digest_enabled = Column(Boolean, nullable=False, default=True)
    surface_enabled = Column(Boolean, nullable=False, default=True)
    interactive_actions_enabled = Column(Boolean, nullable=False, default=True)
    health_status = Column(String(20), nullable=False, default="healthy")
    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_health_check_at = Column(DateTime(), nullable=True)
    deactivated_at = Column(DateTime(), nullable=True)
    deactivation_reason = Column(String(100), nullable=True)


class AnalyticsModel(Base):
    """Delivery counters for one workspace over one hourly or daily bucket."""

    __tablename__ = "chat_delivery_analytics"
    __table_args__ = (
        UniqueConstraint("workspace_id", "period", "period_start", name="uq_analytics_bucket"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    period = Column(String(10), nullable=False)
    period_start = Column(DateTime(), nullable=False)
    sent = Column(Integer, nullable=False, default=0)
    delivered = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)


__all__ = ["AnalyticsModel", "WorkspaceModel"]
