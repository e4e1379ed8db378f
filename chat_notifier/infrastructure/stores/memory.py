"""Process-local :class:`~chat_notifier.domain.ports.Store` implementation."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from copy import deepcopy
from datetime import datetime, timedelta

from chat_notifier.domain.entities import (
    DigestFrequency,
    DigestPeriod,
    NotificationRecord,
    RecipientProfile,
    WorkspaceConfig,
)
from chat_notifier.domain.exceptions import ValidationError
from chat_notifier.infrastructure.repositories import ANALYTICS_COUNTERS
from chat_notifier.utils import ensure_utc


class InMemoryStore:
    """Dictionary-backed store.

    Every load and save copies the entity, so callers never share mutable
    state with the store or with each other.
    """

    def __init__(self) -> None:
        self._notifications: dict[str, NotificationRecord] = {}
        self._recipients: dict[str, RecipientProfile] = {}
        self._workspaces: dict[str, WorkspaceConfig] = {}
        self._analytics: defaultdict[tuple[str, str, datetime], dict[str, int]] = defaultdict(
            lambda: {name: 0 for name in ANALYTICS_COUNTERS}
        )

    async def load_notification(self, notification_id: str) -> NotificationRecord | None:
        return deepcopy(self._notifications.get(notification_id))

    async def save_notification(self, record: NotificationRecord) -> NotificationRecord:
        self._notifications[record.id] = deepcopy(record)
        return deepcopy(record)

    async def load_recipient(self, recipient_id: str) -> RecipientProfile | None:
        return deepcopy(self._recipients.get(recipient_id))

    async def find_recipient_by_user(
        self, app_user_id: str, workspace_id: str | None = None
    ) -> RecipientProfile | None:
        for profile in self._active_recipients():
            if profile.app_user_id != app_user_id:
                continue
            if workspace_id is not None and profile.workspace_id != workspace_id:
                continue
            return deepcopy(profile)
        return None

    async def find_recipients_by_users(
        self, app_user_ids: Iterable[str]
    ) -> list[RecipientProfile]:
        wanted = set(app_user_ids)
        return [
            deepcopy(profile)
            for profile in self._active_recipients()
            if profile.app_user_id in wanted
        ]

    async def save_recipient(self, profile: RecipientProfile) -> RecipientProfile:
        if profile.is_active:
            for other in self._active_recipients():
                if (
                    other.id != profile.id
                    and other.app_user_id == profile.app_user_id
                    and other.workspace_id == profile.workspace_id
                ):
                    raise ValidationError(
                        f"User {profile.app_user_id} already has an active profile "
                        f"in workspace {profile.workspace_id}"
                    )
        self._recipients[profile.id] = deepcopy(profile)
        return deepcopy(profile)

    async def load_workspace(self, workspace_id: str) -> WorkspaceConfig | None:
        return deepcopy(self._workspaces.get(workspace_id))

    async def save_workspace(self, workspace: WorkspaceConfig) -> WorkspaceConfig:
        self._workspaces[workspace.id] = deepcopy(workspace)
        return deepcopy(workspace)

    async def find_pending_retries(
        self, limit: int, *, now: datetime
    ) -> list[NotificationRecord]:
        due = [record for record in self._notifications.values() if record.is_retry_due(now)]
        due.sort(key=lambda record: (record.next_retry_at, record.id))
        return [deepcopy(record) for record in due[:limit]]

    async def find_recipients_with_pending_batches(
        self, max_age: timedelta, *, now: datetime
    ) -> list[RecipientProfile]:
        cutoff = now - max_age
        return [
            deepcopy(profile)
            for profile in self._active_recipients()
            if profile.pending_batch
            and (
                profile.last_batch_flushed_at is None
                or profile.last_batch_flushed_at <= cutoff
            )
        ]

    async def find_recipients_for_digest(
        self, period: DigestPeriod, tick: datetime, *, weekly_weekday: int = 0
    ) -> list[RecipientProfile]:
        frequency = DigestFrequency(period.value)
        return [
            deepcopy(profile)
            for profile in self._active_recipients()
            if profile.preferences.digest_frequency is frequency
            and profile.is_digest_due(period, tick, weekly_weekday=weekly_weekday)
        ]

    async def increment_analytics(
        self,
        workspace_id: str,
        *,
        period: str,
        period_start: datetime,
        counters: dict[str, int],
    ) -> None:
        bucket = self._analytics[(workspace_id, period, ensure_utc(period_start))]
        for name, amount in counters.items():
            if name not in ANALYTICS_COUNTERS:
                raise ValueError(f"Unknown analytics counter '{name}'")
            bucket[name] += amount

    async def get_analytics(
        self, workspace_id: str, *, period: str, period_start: datetime
    ) -> dict[str, int]:
        key = (workspace_id, period, ensure_utc(period_start))
        if key not in self._analytics:
            return {name: 0 for name in ANALYTICS_COUNTERS}
        return dict(self._analytics[key])

    def _active_recipients(self) -> list[RecipientProfile]:
        return [profile for profile in self._recipients.values() if profile.is_active]


__all__ = ["InMemoryStore"]
