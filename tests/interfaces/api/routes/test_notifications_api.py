"""HTTP tests for the notification operator endpoints."""

from __future__ import annotations

import asyncio
import itertools

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chat_notifier.application.use_cases.notifications import NotificationEngine
from chat_notifier.config import Settings
from chat_notifier.domain.entities import WorkspaceConfig
from chat_notifier.infrastructure.stores import InMemoryStore
from chat_notifier.interfaces.api.routes import register_routes
from chat_notifier.main import create_app


@pytest.fixture
def api_store(recipient_factory) -> InMemoryStore:
    store = InMemoryStore()

    async def seed() -> None:
        await store.save_workspace(WorkspaceConfig(id="W1", name="Acme"))
        await store.save_recipient(recipient_factory())
        await store.save_recipient(
            recipient_factory(
                id="R2", app_user_id="user-2", platform_user_id="U2", dm_channel_id="D2"
            )
        )

    asyncio.run(seed())
    return store


@pytest.fixture
def client(api_store, channel, renderer, work_items, clock, sleep):
    ids = itertools.count(1)
    engine = NotificationEngine(
        store=api_store,
        channel=channel,
        renderer=renderer,
        work_items=work_items,
        # Hold deliveries in the queue so requests observe the queued state.
        settings=Settings(_env_file=None, notification_debounce_ms=60000),
        clock=clock,
        sleep=sleep,
        id_factory=lambda: f"N{next(ids)}",
    )
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def _event(**overrides) -> dict:
    body = {"type": "task_updated", "user_id": "user-1", "title": "Task changed", "task_id": "T1"}
    body.update(overrides)
    return body


def test_submit_event_queues_notification(client):
    response = client.post("/notifications/events", json=_event(priority="high"))

    assert response.status_code == 202
    assert response.json() == {"notification_id": "N1", "queued": True}

    record = client.get("/notifications/N1")
    assert record.status_code == 200
    body = record.json()
    assert body["status"] == "queued"
    assert body["recipient_id"] == "R1"
    assert body["priority"] == "high"


def test_submit_for_unlinked_user_is_not_queued(client):
    response = client.post("/notifications/events", json=_event(user_id="user-9"))

    assert response.status_code == 202
    assert response.json() == {"notification_id": None, "queued": False}


@pytest.mark.parametrize(
    "body",
    [
        _event(type="task_exploded"),
        _event(priority="urgent"),
        _event(user_id=""),
        _event(unexpected=True),
    ],
)
def test_submit_rejects_invalid_payloads(client, body):
    response = client.post("/notifications/events", json=body)

    assert response.status_code == 422


def test_submit_rejects_blank_user_id(client):
    response = client.post("/notifications/events", json=_event(user_id="   "))

    assert response.status_code == 422
    assert "user id" in response.json()["detail"]


def test_bulk_submit_reports_counts(client):
    event = _event()
    event.pop("user_id")

    response = client.post(
        "/notifications/events/bulk",
        json={"user_ids": ["user-1", "user-2", "user-9"], "event": event},
    )

    assert response.status_code == 202
    assert response.json() == {"successful": 2, "failed": 0, "skipped": 1}


def test_get_unknown_notification_returns_404(client):
    response = client.get("/notifications/missing")

    assert response.status_code == 404


def test_record_interaction(client):
    client.post("/notifications/events", json=_event())

    response = client.post(
        "/notifications/N1/interactions", json={"action_id": "mark_complete", "actor": "U1"}
    )

    assert response.status_code == 201
    assert response.json()["action_id"] == "mark_complete"
    assert response.json()["actor"] == "U1"

    missing = client.post("/notifications/N9/interactions", json={"action_id": "snooze"})
    assert missing.status_code == 404


def test_queue_stats_lists_every_queue(client):
    response = client.get("/notifications/queues/stats")

    assert response.status_code == 200
    assert set(response.json()) == {
        "notifications",
        "batches",
        "digests",
        "surface_refresh",
        "analytics",
    }
    assert response.json()["notifications"] == {"waiting": 0, "completed": 0, "failed": 0}


def test_sweeps_report_queued_jobs(client):
    assert client.post("/notifications/sweeps/batches").json() == {"queued": 0}
    assert client.post("/notifications/sweeps/retries").json() == {"queued": 0}
    assert client.post("/notifications/sweeps/digests/daily").json() == {"queued": 0}

    assert client.post("/notifications/sweeps/digests/monthly").status_code == 422


def test_surface_refresh_and_batch_flush_requests(client):
    refresh = client.post("/notifications/surfaces/R1/refresh")
    flush = client.post("/notifications/batches/R1/flush", params={"force": True})

    assert refresh.status_code == 200
    assert refresh.json() == {"queued": True}
    assert flush.status_code == 200
    assert flush.json() == {"queued": True}


def test_missing_engine_returns_503():
    app = FastAPI()
    register_routes(app)

    response = TestClient(app).get("/notifications/queues/stats")

    assert response.status_code == 503
