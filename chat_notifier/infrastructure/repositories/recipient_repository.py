"""Persistence helpers for recipient profiles."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable, Sequence
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from chat_notifier.domain.entities import (
    DigestFrequency,
    NotificationPriority,
    NotificationType,
    PendingBatchEntry,
    RecipientPreferences,
    RecipientProfile,
    TaskThread,
)
from chat_notifier.domain.exceptions import ValidationError
from chat_notifier.infrastructure.models import RecipientModel
from chat_notifier.utils import format_time_of_day, parse_time_of_day

from ._datetimes import from_db_datetime, to_db_datetime

_TIME_FIELDS = ("quiet_hours_start", "quiet_hours_end", "digest_time")
_PREFERENCE_FIELDS = frozenset(field.name for field in fields(RecipientPreferences))


def preferences_to_dict(preferences: RecipientPreferences) -> dict[str, Any]:
    data = asdict(preferences)
    for name in _TIME_FIELDS:
        data[name] = format_time_of_day(data[name])
    data["digest_frequency"] = preferences.digest_frequency.value
    return data


def preferences_from_dict(data: dict[str, Any] | None) -> RecipientPreferences:
    values = {key: value for key, value in (data or {}).items() if key in _PREFERENCE_FIELDS}
    for name in _TIME_FIELDS:
        if values.get(name) is not None:
            values[name] = parse_time_of_day(values[name])
    if values.get("digest_frequency") is not None:
        values["digest_frequency"] = DigestFrequency(values["digest_frequency"])
    return RecipientPreferences(**values)


class RecipientRepository:
    """Provide lookups and upserts for :class:`RecipientProfile` objects."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, recipient_id: str) -> RecipientProfile | None:
        model = self.session.get(RecipientModel, recipient_id)
        if model is None:
            return None
        return self._to_entity(model)

    def find_active_by_user(
        self, app_user_id: str, workspace_id: str | None = None
    ) -> RecipientProfile | None:
        query = (
            self.session.query(RecipientModel)
            .filter(RecipientModel.app_user_id == app_user_id)
            .filter(RecipientModel.is_active.is_(True))
        )
        if workspace_id is not None:
            query = query.filter(RecipientModel.workspace_id == workspace_id)
        model = query.order_by(RecipientModel.linked_at.asc(), RecipientModel.id.asc()).first()
        if model is None:
            return None
        return self._to_entity(model)

    def list_active_by_users(self, app_user_ids: Iterable[str]) -> Sequence[RecipientProfile]:
        ids = [user_id for user_id in app_user_ids if user_id]
        if not ids:
            return []
        query = (
            self.session.query(RecipientModel)
            .filter(RecipientModel.app_user_id.in_(ids))
            .filter(RecipientModel.is_active.is_(True))
            .order_by(RecipientModel.linked_at.asc(), RecipientModel.id.asc())
        )
        return [self._to_entity(model) for model in query.all()]

    def list_with_pending_batches(self, *, flushed_before: datetime) -> Sequence[RecipientProfile]:
        cutoff = to_db_datetime(flushed_before)
        query = (
            self.session.query(RecipientModel)
            .filter(RecipientModel.is_active.is_(True))
            .filter(RecipientModel.pending_batch_size > 0)
            .filter(
                (RecipientModel.last_batch_flushed_at.is_(None))
                | (RecipientModel.last_batch_flushed_at <= cutoff)
            )
        )
        return [self._to_entity(model) for model in query.all()]

    def list_by_digest_frequency(self, frequency: DigestFrequency) -> Sequence[RecipientProfile]:
        query = (
            self.session.query(RecipientModel)
            .filter(RecipientModel.is_active.is_(True))
            .filter(RecipientModel.digest_frequency == frequency.value)
        )
        return [self._to_entity(model) for model in query.all()]

    def save(self, profile: RecipientProfile) -> RecipientProfile:
        if profile.is_active:
            conflict = (
                self.session.query(RecipientModel.id)
                .filter(RecipientModel.app_user_id == profile.app_user_id)
                .filter(RecipientModel.workspace_id == profile.workspace_id)
                .filter(RecipientModel.is_active.is_(True))
                .filter(RecipientModel.id != profile.id)
                .first()
            )
            if conflict is not None:
                raise ValidationError(
                    f"User {profile.app_user_id} already has an active profile "
                    f"in workspace {profile.workspace_id}"
                )

        model = self.session.get(RecipientModel, profile.id)
        if model is None:
            model = RecipientModel(id=profile.id)
        self._apply_entity_to_model(model, profile)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    @staticmethod
    def _apply_entity_to_model(model: RecipientModel, profile: RecipientProfile) -> None:
        model.app_user_id = profile.app_user_id
        model.workspace_id = profile.workspace_id
        model.platform_user_id = profile.platform_user_id
        model.timezone = profile.timezone
        model.display_name = profile.display_name
        model.dm_channel_id = profile.dm_channel_id
        model.preferences = preferences_to_dict(profile.preferences)
        model.digest_frequency = profile.preferences.digest_frequency.value
        model.pending_batch = [
            {
                "type": entry.type.value,
                "title": entry.title,
                "priority": entry.priority.value,
                "created_at": entry.created_at.isoformat(),
                "message": entry.message,
                "entity_id": entry.entity_id,
                "entity_type": entry.entity_type,
                "deferred_for_quiet_hours": entry.deferred_for_quiet_hours,
            }
            for entry in profile.pending_batch
        ]
        model.pending_batch_size = len(profile.pending_batch)
        model.last_batch_flushed_at = to_db_datetime(profile.last_batch_flushed_at)
        # Least recently used first, so order survives the round trip.
        model.task_threads = [
            {
                "task_id": task_id,
                "channel_id": thread.channel_id,
                "thread_id": thread.thread_id,
                "last_activity_at": thread.last_activity_at.isoformat(),
            }
            for task_id, thread in profile.task_threads.items()
        ]
        model.interaction_count = profile.interaction_count
        model.last_interaction_at = to_db_datetime(profile.last_interaction_at)
        model.surface_refreshed_at = to_db_datetime(profile.surface_refreshed_at)
        model.is_active = profile.is_active
        model.linked_at = to_db_datetime(profile.linked_at)
        model.unlinked_at = to_db_datetime(profile.unlinked_at)

    @staticmethod
    def _to_entity(model: RecipientModel) -> RecipientProfile:
        return RecipientProfile(
            id=model.id,
            app_user_id=model.app_user_id,
            workspace_id=model.workspace_id,
            platform_user_id=model.platform_user_id,
            timezone=model.timezone or "UTC",
            display_name=model.display_name,
            dm_channel_id=model.dm_channel_id,
            preferences=preferences_from_dict(model.preferences),
            pending_batch=[
                PendingBatchEntry(
                    type=NotificationType(item["type"]),
                    title=item["title"],
                    priority=NotificationPriority(item["priority"]),
                    created_at=_parse(item["created_at"]),
                    message=item.get("message"),
                    entity_id=item.get("entity_id"),
                    entity_type=item.get("entity_type"),
                    deferred_for_quiet_hours=bool(item.get("deferred_for_quiet_hours")),
                )
                for item in model.pending_batch or []
            ],
            last_batch_flushed_at=from_db_datetime(model.last_batch_flushed_at),
            task_threads=OrderedDict(
                (
                    item["task_id"],
                    TaskThread(
                        channel_id=item["channel_id"],
                        thread_id=item["thread_id"],
                        last_activity_at=_parse(item["last_activity_at"]),
                    ),
                )
                for item in model.task_threads or []
            ),
            interaction_count=model.interaction_count or 0,
            last_interaction_at=from_db_datetime(model.last_interaction_at),
            surface_refreshed_at=from_db_datetime(model.surface_refreshed_at),
            is_active=bool(model.is_active),
            linked_at=from_db_datetime(model.linked_at),
            unlinked_at=from_db_datetime(model.unlinked_at),
        )


def _parse(value: str) -> datetime:
    parsed = from_db_datetime(datetime.fromisoformat(value))
    assert parsed is not None
    return parsed


__all__ = [
    "RecipientRepository",
    "preferences_from_dict",
    "preferences_to_dict",
]
