"""Persistence helpers for workspaces and delivery analytics."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from chat_notifier.domain.entities import WorkspaceConfig, WorkspaceHealth
from chat_notifier.infrastructure.models import AnalyticsModel, WorkspaceModel

from ._datetimes import from_db_datetime, to_db_datetime

ANALYTICS_COUNTERS = ("sent", "delivered", "failed", "errors")


class WorkspaceRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, workspace_id: str) -> WorkspaceConfig | None:
        model = self.session.get(WorkspaceModel, workspace_id)
        if model is None:
            return None
        return self._to_entity(model)

    def save(self, workspace: WorkspaceConfig) -> WorkspaceConfig:
        model = self.session.get(WorkspaceModel, workspace.id)
        if model is None:
            model = WorkspaceModel(id=workspace.id)
        model.name = workspace.name
        model.is_active = workspace.is_active
        model.notifications_enabled = workspace.notifications_enabled
        model.threaded_notifications = workspace.threaded_notifications
        model.batching_enabled = workspace.batching_enabled
        model.batch_interval_minutes = workspace.batch_interval_minutes
        model.digest_enabled = workspace.digest_enabled
        model.surface_enabled = workspace.surface_enabled
        model.interactive_actions_enabled = workspace.interactive_actions_enabled
        model.health_status = workspace.health_status.value
        model.consecutive_failures = workspace.consecutive_failures
        model.last_health_check_at = to_db_datetime(workspace.last_health_check_at)
        model.deactivated_at = to_db_datetime(workspace.deactivated_at)
        model.deactivation_reason = workspace.deactivation_reason
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    @staticmethod
    def _to_entity(model: WorkspaceModel) -> WorkspaceConfig:
        return WorkspaceConfig(
            id=model.id,
            name=model.name or "",
            is_active=bool(model.is_active),
            notifications_enabled=bool(model.notifications_enabled),
            threaded_notifications=bool(model.threaded_notifications),
            batching_enabled=bool(model.batching_enabled),
            batch_interval_minutes=model.batch_interval_minutes,
            digest_enabled=bool(model.digest_enabled),
            surface_enabled=bool(model.surface_enabled),
            interactive_actions_enabled=bool(model.interactive_actions_enabled),
            health_status=WorkspaceHealth(model.health_status),
            consecutive_failures=model.consecutive_failures or 0,
            last_health_check_at=from_db_datetime(model.last_health_check_at),
            deactivated_at=from_db_datetime(model.deactivated_at),
            deactivation_reason=model.deactivation_reason,
        )


class AnalyticsRepository:
    """Hourly and daily delivery counters per workspace."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def increment(
        self,
        workspace_id: str,
        *,
        period: str,
        period_start: datetime,
        counters: dict[str, int],
    ) -> None:
        start = to_db_datetime(period_start)
        model = (
            self.session.query(AnalyticsModel)
            .filter(AnalyticsModel.workspace_id == workspace_id)
            .filter(AnalyticsModel.period == period)
            .filter(AnalyticsModel.period_start == start)
            .one_or_none()
        )
        if model is None:
            model = AnalyticsModel(workspace_id=workspace_id, period=period, period_start=start)
            for name in ANALYTICS_COUNTERS:
                setattr(model, name, 0)
        for name, amount in counters.items():
            if name not in ANALYTICS_COUNTERS:
                raise ValueError(f"Unknown analytics counter '{name}'")
            setattr(model, name, (getattr(model, name) or 0) + amount)
        self.session.add(model)
        self.session.commit()

    def get(self, workspace_id: str, *, period: str, period_start: datetime) -> dict[str, int]:
        model = (
            self.session.query(AnalyticsModel)
            .filter(AnalyticsModel.workspace_id == workspace_id)
            .filter(AnalyticsModel.period == period)
            .filter(AnalyticsModel.period_start == to_db_datetime(period_start))
            .one_or_none()
        )
        if model is None:
            return {name: 0 for name in ANALYTICS_COUNTERS}
        return {name: getattr(model, name) or 0 for name in ANALYTICS_COUNTERS}


__all__ = ["ANALYTICS_COUNTERS", "AnalyticsRepository", "WorkspaceRepository"]
