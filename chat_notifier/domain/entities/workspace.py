"""Domain entity describing a chat workspace the engine delivers into."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class WorkspaceHealth(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNHEALTHY = "unhealthy"


@dataclass
class WorkspaceConfig:
    """Per-workspace settings plus a coarse health indicator."""

    id: str
    name: str = ""
    is_active: bool = True
    notifications_enabled: bool = True
    threaded_notifications: bool = True
    batching_enabled: bool = True
    batch_interval_minutes: int = 5
    digest_enabled: bool = True
    surface_enabled: bool = True
    interactive_actions_enabled: bool = True
    health_status: WorkspaceHealth = WorkspaceHealth.HEALTHY
    consecutive_failures: int = 0
    last_health_check_at: datetime | None = None
    deactivated_at: datetime | None = None
    deactivation_reason: str | None = None

    @property
    def accepts_notifications(self) -> bool:
        return self.is_active and self.notifications_enabled

    def mark_healthy(self, now: datetime) -> bool:
        """Reset failure tracking; returns ``True`` when anything changed."""

        changed = (
            self.health_status != WorkspaceHealth.HEALTHY or self.consecutive_failures != 0
        )
        self.health_status = WorkspaceHealth.HEALTHY
        self.consecutive_failures = 0
        self.last_health_check_at = now
        return changed

    def mark_failure(
        self, now: datetime, *, degraded_threshold: int = 3, unhealthy_threshold: int = 10
    ) -> None:
        self.consecutive_failures += 1
        self.last_health_check_at = now
        if self.consecutive_failures >= unhealthy_threshold:
            self.health_status = WorkspaceHealth.UNHEALTHY
        elif self.consecutive_failures >= degraded_threshold:
            self.health_status = WorkspaceHealth.DEGRADED

    def mark_rate_limited(self, now: datetime) -> None:
        if self.health_status != WorkspaceHealth.UNHEALTHY:
            self.health_status = WorkspaceHealth.RATE_LIMITED
        self.last_health_check_at = now

    def deactivate(self, now: datetime, reason: str) -> None:
        """Disable delivery until the workspace is re-authorized."""

        self.is_active = False
        self.health_status = WorkspaceHealth.UNHEALTHY
        self.deactivated_at = now
        self.deactivation_reason = reason


__all__ = ["WorkspaceConfig", "WorkspaceHealth"]
