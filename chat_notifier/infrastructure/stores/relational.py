"""SQLAlchemy-backed :class:`~chat_notifier.domain.ports.Store` implementation."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import TypeVar

from anyio import to_thread
from sqlalchemy.orm import Session, sessionmaker

from chat_notifier.domain.entities import (
    DigestFrequency,
    DigestPeriod,
    NotificationRecord,
    RecipientProfile,
    WorkspaceConfig,
)
from chat_notifier.infrastructure.repositories import (
    AnalyticsRepository,
    NotificationRepository,
    RecipientRepository,
    WorkspaceRepository,
)

T = TypeVar("T")


class SqlAlchemyStore:
    """Run the synchronous repositories on worker threads.

    Each call uses its own short-lived session.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, work: Callable[[Session], T]) -> T:
        def call() -> T:
            with self._session_factory() as session:
                return work(session)

        return await to_thread.run_sync(call)

    async def load_notification(self, notification_id: str) -> NotificationRecord | None:
        return await self._run(lambda session: NotificationRepository(session).get(notification_id))

    async def save_notification(self, record: NotificationRecord) -> NotificationRecord:
        return await self._run(lambda session: NotificationRepository(session).save(record))

    async def load_recipient(self, recipient_id: str) -> RecipientProfile | None:
        return await self._run(lambda session: RecipientRepository(session).get(recipient_id))

    async def find_recipient_by_user(
        self, app_user_id: str, workspace_id: str | None = None
    ) -> RecipientProfile | None:
        return await self._run(
            lambda session: RecipientRepository(session).find_active_by_user(
                app_user_id, workspace_id
            )
        )

    async def find_recipients_by_users(
        self, app_user_ids: Iterable[str]
    ) -> list[RecipientProfile]:
        ids = list(app_user_ids)
        return await self._run(
            lambda session: list(RecipientRepository(session).list_active_by_users(ids))
        )

    async def save_recipient(self, profile: RecipientProfile) -> RecipientProfile:
        return await self._run(lambda session: RecipientRepository(session).save(profile))

    async def load_workspace(self, workspace_id: str) -> WorkspaceConfig | None:
        return await self._run(lambda session: WorkspaceRepository(session).get(workspace_id))

    async def save_workspace(self, workspace: WorkspaceConfig) -> WorkspaceConfig:
        return await self._run(lambda session: WorkspaceRepository(session).save(workspace))

    async def find_pending_retries(
        self, limit: int, *, now: datetime
    ) -> list[NotificationRecord]:
        return await self._run(
            lambda session: list(
                NotificationRepository(session).list_pending_retries(limit=limit, now=now)
            )
        )

    async def find_recipients_with_pending_batches(
        self, max_age: timedelta, *, now: datetime
    ) -> list[RecipientProfile]:
        return await self._run(
            lambda session: list(
                RecipientRepository(session).list_with_pending_batches(
                    flushed_before=now - max_age
                )
            )
        )

    async def find_recipients_for_digest(
        self, period: DigestPeriod, tick: datetime, *, weekly_weekday: int = 0
    ) -> list[RecipientProfile]:
        candidates = await self._run(
            lambda session: RecipientRepository(session).list_by_digest_frequency(
                DigestFrequency(period.value)
            )
        )
        # Digest hours are local to each recipient, so the final filter runs here.
        return [
            profile
            for profile in candidates
            if profile.is_digest_due(period, tick, weekly_weekday=weekly_weekday)
        ]

    async def increment_analytics(
        self,
        workspace_id: str,
        *,
        period: str,
        period_start: datetime,
        counters: dict[str, int],
    ) -> None:
        await self._run(
            lambda session: AnalyticsRepository(session).increment(
                workspace_id, period=period, period_start=period_start, counters=counters
            )
        )

    async def get_analytics(
        self, workspace_id: str, *, period: str, period_start: datetime
    ) -> dict[str, int]:
        return await self._run(
            lambda session: AnalyticsRepository(session).get(
                workspace_id, period=period, period_start=period_start
            )
        )


__all__ = ["SqlAlchemyStore"]
