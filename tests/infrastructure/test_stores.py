"""Contract tests shared by the in-memory and SQLAlchemy stores."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest
import pytest_asyncio

from chat_notifier.domain.entities import (
    DigestFrequency,
    DigestPeriod,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    PendingBatchEntry,
    RecipientPreferences,
    WorkspaceConfig,
    WorkspaceHealth,
)
from chat_notifier.domain.exceptions import ValidationError
from chat_notifier.infrastructure.database import (
    create_database_engine,
    create_session_factory,
    initialize_database,
)
from chat_notifier.infrastructure.stores import InMemoryStore, SqlAlchemyStore

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["memory", "sqlalchemy"])
async def any_store(request):
    if request.param == "memory":
        store = InMemoryStore()
    else:
        engine = create_database_engine("sqlite://")
        initialize_database(engine)
        store = SqlAlchemyStore(create_session_factory(engine))
        request.addfinalizer(engine.dispose)
    await store.save_workspace(WorkspaceConfig(id="W1", name="Acme"))
    return store


def _record(**overrides) -> NotificationRecord:
    values = {
        "id": "N1",
        "workspace_id": "W1",
        "recipient_id": "R1",
        "type": NotificationType.TASK_ASSIGNED,
        "priority": NotificationPriority.HIGH,
        "channel_id": "D1",
        "payload": {"text": "hello", "blocks": [{"type": "section"}]},
        "created_at": NOW,
    }
    values.update(overrides)
    return NotificationRecord(**values)


@pytest.mark.asyncio
async def test_notification_round_trip(any_store):
    record = _record(task_id="T1", title="Assigned")
    record.mark_queued()
    record.record_interaction("snooze", actor="U1", outcome=None, now=NOW)

    await any_store.save_notification(record)
    loaded = await any_store.load_notification("N1")

    assert loaded.status is NotificationStatus.QUEUED
    assert loaded.payload == record.payload
    assert loaded.task_id == "T1"
    assert loaded.created_at == NOW
    assert loaded.expires_at == record.expires_at
    assert [item.action_id for item in loaded.interactions] == ["snooze"]
    assert loaded.interactions[0].timestamp == NOW
    assert await any_store.load_notification("missing") is None


@pytest.mark.asyncio
async def test_pending_retries_are_due_ordered_and_limited(any_store):
    for index, offset in enumerate((30, 10, 20)):
        record = _record(id=f"N{index}")
        record.mark_failed("transient", now=NOW - timedelta(seconds=offset + 60))
        await any_store.save_notification(record)
    not_due = _record(id="later")
    not_due.mark_failed("transient", now=NOW)
    await any_store.save_notification(not_due)
    exhausted = _record(id="done", max_retries=1)
    exhausted.mark_failed("transient", now=NOW - timedelta(hours=1))
    await any_store.save_notification(exhausted)

    due = await any_store.find_pending_retries(2, now=NOW)

    assert [record.id for record in due] == ["N0", "N2"]


@pytest.mark.asyncio
async def test_recipient_round_trip_keeps_buffer_and_thread_order(any_store, recipient_factory):
    recipient = recipient_factory(
        timezone="Europe/Madrid",
        preferences=RecipientPreferences(
            quiet_hours_enabled=True,
            quiet_hours_start=time(21, 30),
            digest_frequency=DigestFrequency.DAILY,
        ),
    )
    recipient.add_to_batch(
        PendingBatchEntry(
            type=NotificationType.TASK_UPDATED,
            title="Changed",
            priority=NotificationPriority.LOW,
            created_at=NOW,
            deferred_for_quiet_hours=True,
        )
    )
    recipient.set_task_thread("T2", "D1", "th2", now=NOW)
    recipient.set_task_thread("T1", "D1", "th1", now=NOW)

    await any_store.save_recipient(recipient)
    loaded = await any_store.load_recipient("R1")

    assert loaded.timezone == "Europe/Madrid"
    assert loaded.preferences.quiet_hours_start == time(21, 30)
    assert loaded.preferences.digest_frequency is DigestFrequency.DAILY
    assert loaded.pending_batch == recipient.pending_batch
    assert list(loaded.task_threads) == ["T2", "T1"]
    assert loaded.linked_at == recipient.linked_at


@pytest.mark.asyncio
async def test_one_active_profile_per_user_and_workspace(any_store, recipient_factory):
    await any_store.save_recipient(recipient_factory())

    with pytest.raises(ValidationError):
        await any_store.save_recipient(recipient_factory(id="R2", platform_user_id="U2"))

    await any_store.save_recipient(recipient_factory(id="R3", workspace_id="W2"))
    old = await any_store.load_recipient("R1")
    old.deactivate(NOW)
    await any_store.save_recipient(old)
    await any_store.save_recipient(recipient_factory(id="R2", platform_user_id="U2"))

    found = await any_store.find_recipient_by_user("user-1", "W1")
    assert found.id == "R2"
    profiles = await any_store.find_recipients_by_users(["user-1", "user-9"])
    assert sorted(profile.id for profile in profiles) == ["R2", "R3"]


@pytest.mark.asyncio
async def test_pending_batch_lookup_uses_flush_cutoff(any_store, recipient_factory):
    entry = PendingBatchEntry(
        type=NotificationType.TASK_UPDATED,
        title="Changed",
        priority=NotificationPriority.LOW,
        created_at=NOW,
    )
    never_flushed = recipient_factory()
    never_flushed.add_to_batch(entry)
    recent = recipient_factory(id="R2", app_user_id="user-2", platform_user_id="U2")
    recent.add_to_batch(entry)
    recent.last_batch_flushed_at = NOW - timedelta(minutes=1)
    empty = recipient_factory(id="R3", app_user_id="user-3", platform_user_id="U3")
    for profile in (never_flushed, recent, empty):
        await any_store.save_recipient(profile)

    due = await any_store.find_recipients_with_pending_batches(timedelta(minutes=5), now=NOW)

    assert [profile.id for profile in due] == ["R1"]


@pytest.mark.asyncio
async def test_digest_lookup_filters_frequency_and_hour(any_store, recipient_factory):
    daily = recipient_factory(
        preferences=RecipientPreferences(
            digest_frequency=DigestFrequency.DAILY, digest_time=time(12, 0)
        )
    )
    other_hour = recipient_factory(
        id="R2",
        app_user_id="user-2",
        platform_user_id="U2",
        preferences=RecipientPreferences(
            digest_frequency=DigestFrequency.DAILY, digest_time=time(8, 0)
        ),
    )
    for profile in (daily, other_hour):
        await any_store.save_recipient(profile)

    due = await any_store.find_recipients_for_digest(DigestPeriod.DAILY, NOW)

    assert [profile.id for profile in due] == ["R1"]
    assert await any_store.find_recipients_for_digest(DigestPeriod.WEEKLY, NOW) == []


@pytest.mark.asyncio
async def test_workspace_health_round_trip(any_store):
    workspace = await any_store.load_workspace("W1")
    workspace.mark_failure(NOW, degraded_threshold=1)
    await any_store.save_workspace(workspace)

    loaded = await any_store.load_workspace("W1")

    assert loaded.health_status is WorkspaceHealth.DEGRADED
    assert loaded.consecutive_failures == 1
    assert loaded.last_health_check_at == NOW
    assert await any_store.load_workspace("W9") is None


@pytest.mark.asyncio
async def test_analytics_counters_accumulate(any_store):
    start = NOW.replace(minute=0)

    await any_store.increment_analytics(
        "W1", period="hourly", period_start=start, counters={"sent": 1, "delivered": 1}
    )
    await any_store.increment_analytics(
        "W1", period="hourly", period_start=start, counters={"errors": 1, "failed": 1}
    )

    counters = await any_store.get_analytics("W1", period="hourly", period_start=start)
    assert counters == {"sent": 1, "delivered": 1, "failed": 1, "errors": 1}
    with pytest.raises(ValueError):
        await any_store.increment_analytics(
            "W1", period="hourly", period_start=start, counters={"clicks": 1}
        )
