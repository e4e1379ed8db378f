"""Shared fakes and fixtures for the delivery engine tests."""

from __future__ import annotations

import itertools
import sys
from collections import deque
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

# Ensure the project root (which contains the ``chat_notifier`` package) is importable
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chat_notifier.application.use_cases.notifications import NotificationEngine
from chat_notifier.config import Settings
from chat_notifier.domain.entities import (
    NotificationType,
    RecipientPreferences,
    RecipientProfile,
    WorkItem,
    WorkspaceConfig,
)
from chat_notifier.domain.ports import SendResult
from chat_notifier.infrastructure.stores import InMemoryStore

# Wednesday, 12:00 UTC.
BASE_TIME = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable replacement for ``utc_now``."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value


class FakeSleep:
    """Record requested delays and move the fake clock forward by them."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds=seconds)


class FakeChannelClient:
    """Scripted chat transport.

    Queue exceptions in ``send_failures`` (or ``open_failures`` /
    ``surface_failures``) to make the next calls fail; once the queue is empty
    calls succeed.
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.opened: list[tuple[str, str]] = []
        self.surfaces: list[tuple[str, str, dict[str, Any]]] = []
        self.updates: list[tuple[str, str, str, dict[str, Any]]] = []
        self.send_failures: deque[Exception] = deque()
        self.open_failures: deque[Exception] = deque()
        self.surface_failures: deque[Exception] = deque()
        self.send_attempts = 0
        self._ids = itertools.count(1)

    async def send(self, workspace_id, channel_id, payload, *, thread_id=None) -> SendResult:
        self.send_attempts += 1
        if self.send_failures:
            raise self.send_failures.popleft()
        external_id = f"msg-{next(self._ids)}"
        self.sent.append(
            {
                "workspace_id": workspace_id,
                "channel_id": channel_id,
                "payload": payload,
                "thread_id": thread_id,
                "external_id": external_id,
            }
        )
        return SendResult(external_id=external_id, latency_ms=25)

    async def update_message(self, workspace_id, channel_id, external_id, payload) -> SendResult:
        self.updates.append((workspace_id, channel_id, external_id, payload))
        return SendResult(external_id=external_id, latency_ms=10)

    async def open_direct_channel(self, workspace_id, platform_user_id) -> str:
        if self.open_failures:
            raise self.open_failures.popleft()
        self.opened.append((workspace_id, platform_user_id))
        return f"D-{platform_user_id}"

    async def publish_surface(self, workspace_id, platform_user_id, surface) -> None:
        if self.surface_failures:
            raise self.surface_failures.popleft()
        self.surfaces.append((workspace_id, platform_user_id, surface))


class FakeRenderer:
    def __init__(self) -> None:
        self.calls: list[tuple[NotificationType, dict[str, Any]]] = []

    def render(self, notification_type, context):
        self.calls.append((notification_type, context))
        return {"type": notification_type.value, "text": context.get("title"), "context": context}


class FakeWorkItemSource:
    def __init__(self) -> None:
        self.open_items: dict[str, list[WorkItem]] = {}
        self.completed_items: dict[str, list[WorkItem]] = {}
        self.updated_items: dict[str, list[WorkItem]] = {}
        self.completed_since: list[datetime] = []

    async def list_open_items(self, app_user_id):
        return list(self.open_items.get(app_user_id, []))

    async def list_completed_items(self, app_user_id, *, since):
        self.completed_since.append(since)
        return [
            item
            for item in self.completed_items.get(app_user_id, [])
            if item.completed_at is None or item.completed_at >= since
        ]

    async def list_updated_items(self, app_user_id, *, since):
        return [
            item
            for item in self.updated_items.get(app_user_id, [])
            if item.updated_at is None or item.updated_at >= since
        ]


def make_settings(**overrides: Any) -> Settings:
    return Settings(_env_file=None, **overrides)


def make_recipient(**overrides: Any) -> RecipientProfile:
    preferences = overrides.pop("preferences", None) or RecipientPreferences(
        batching_enabled=False
    )
    values: dict[str, Any] = {
        "id": "R1",
        "app_user_id": "user-1",
        "workspace_id": "W1",
        "platform_user_id": "U1",
        "dm_channel_id": "D1",
        "display_name": "Ada",
        "linked_at": BASE_TIME - timedelta(days=30),
    }
    values.update(overrides)
    return RecipientProfile(preferences=preferences, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def channel() -> FakeChannelClient:
    return FakeChannelClient()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def work_items() -> FakeWorkItemSource:
    return FakeWorkItemSource()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def recipient_factory():
    return make_recipient


@pytest_asyncio.fixture
async def store() -> InMemoryStore:
    memory_store = InMemoryStore()
    await memory_store.save_workspace(WorkspaceConfig(id="W1", name="Acme"))
    return memory_store


@pytest.fixture
def engine_factory(store, channel, renderer, work_items, clock, sleep):
    """Build an engine over the shared fakes with ``Settings`` overrides."""

    def build(*, queue_backend_factory=None, **overrides: Any) -> NotificationEngine:
        ids = itertools.count(1)
        return NotificationEngine(
            store=store,
            channel=channel,
            renderer=renderer,
            work_items=work_items,
            settings=make_settings(**overrides),
            clock=clock,
            sleep=sleep,
            id_factory=lambda: f"N{next(ids)}",
            queue_backend_factory=queue_backend_factory,
        )

    return build


@pytest.fixture
def engine(engine_factory) -> NotificationEngine:
    return engine_factory()
