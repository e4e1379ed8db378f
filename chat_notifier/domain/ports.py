"""Collaborator interfaces consumed by the delivery engine."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from chat_notifier.domain.entities import (
    DigestPeriod,
    NotificationRecord,
    NotificationType,
    QueueJob,
    RecipientProfile,
    WorkItem,
    WorkspaceConfig,
)

Payload = dict[str, Any]


@dataclass
class SendResult:
    """Outcome of a successful post to the chat platform."""

    external_id: str
    latency_ms: int | None = None


class ChannelClient(Protocol):
    """Outbound transport for one chat platform.

    Every method raises one of the :class:`~chat_notifier.domain.exceptions.ChannelError`
    subclasses on failure.
    """

    async def send(
        self,
        workspace_id: str,
        channel_id: str,
        payload: Payload,
        *,
        thread_id: str | None = None,
    ) -> SendResult:
        ...

    async def update_message(
        self, workspace_id: str, channel_id: str, external_id: str, payload: Payload
    ) -> SendResult:
        ...

    async def open_direct_channel(self, workspace_id: str, platform_user_id: str) -> str:
        ...

    async def publish_surface(
        self, workspace_id: str, platform_user_id: str, surface: Payload
    ) -> None:
        ...


class PayloadRenderer(Protocol):
    """Builds the opaque message body for a notification type."""

    def render(self, notification_type: NotificationType, context: dict[str, Any]) -> Payload:
        ...


class WorkItemSource(Protocol):
    """Task application queries used by digests and surfaces."""

    async def list_open_items(self, app_user_id: str) -> Sequence[WorkItem]:
        ...

    async def list_completed_items(
        self, app_user_id: str, *, since: datetime
    ) -> Sequence[WorkItem]:
        ...

    async def list_updated_items(
        self, app_user_id: str, *, since: datetime
    ) -> Sequence[WorkItem]:
        ...


class Store(Protocol):
    """Persistence for notification records, recipients and workspaces."""

    async def load_notification(self, notification_id: str) -> NotificationRecord | None:
        ...

    async def save_notification(self, record: NotificationRecord) -> NotificationRecord:
        ...

    async def load_recipient(self, recipient_id: str) -> RecipientProfile | None:
        ...

    async def find_recipient_by_user(
        self, app_user_id: str, workspace_id: str | None = None
    ) -> RecipientProfile | None:
        ...

    async def find_recipients_by_users(
        self, app_user_ids: Iterable[str]
    ) -> list[RecipientProfile]:
        ...

    async def save_recipient(self, profile: RecipientProfile) -> RecipientProfile:
        ...

    async def load_workspace(self, workspace_id: str) -> WorkspaceConfig | None:
        ...

    async def save_workspace(self, workspace: WorkspaceConfig) -> WorkspaceConfig:
        ...

    async def find_pending_retries(
        self, limit: int, *, now: datetime
    ) -> list[NotificationRecord]:
        ...

    async def find_recipients_with_pending_batches(
        self, max_age: timedelta, *, now: datetime
    ) -> list[RecipientProfile]:
        ...

    async def find_recipients_for_digest(
        self, period: DigestPeriod, tick: datetime, *, weekly_weekday: int = 0
    ) -> list[RecipientProfile]:
        ...

    async def increment_analytics(
        self,
        workspace_id: str,
        *,
        period: str,
        period_start: datetime,
        counters: dict[str, int],
    ) -> None:
        ...


class QueueBackend(Protocol):
    """Storage for the jobs of one work queue."""

    def push(self, job: QueueJob) -> None:
        """Insert ``job`` keeping ``QueueJob.sort_key`` order."""

    def pop_batch(self, size: int) -> list[QueueJob]:
        """Remove and return up to ``size`` jobs from the front."""

    def remove_key(self, key: str) -> int:
        """Drop queued jobs for ``key`` and return how many were removed."""

    def contains_key(self, key: str) -> bool:
        ...

    def __len__(self) -> int:
        ...


__all__ = [
    "ChannelClient",
    "Payload",
    "PayloadRenderer",
    "QueueBackend",
    "SendResult",
    "Store",
    "WorkItemSource",
]
