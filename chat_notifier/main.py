"""Composition root: build the delivery engine and its HTTP application."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from chat_notifier.application.use_cases.notifications import NotificationEngine
from chat_notifier.config import Settings, get_settings
from chat_notifier.domain.ports import ChannelClient, PayloadRenderer, Store, WorkItemSource
from chat_notifier.infrastructure.database import (
    create_database_engine,
    create_session_factory,
    initialize_database,
)
from chat_notifier.infrastructure.stores import InMemoryStore, SqlAlchemyStore
from chat_notifier.interfaces.api.routes import register_routes


def build_store(settings: Settings) -> Store:
    """Return the store selected by ``STORE_BACKEND``."""

    if settings.store_backend == "sqlalchemy":
        engine = create_database_engine(settings.database_url)
        initialize_database(engine)
        return SqlAlchemyStore(create_session_factory(engine))
    return InMemoryStore()


def build_engine(
    *,
    channel: ChannelClient,
    renderer: PayloadRenderer,
    work_items: WorkItemSource,
    settings: Settings | None = None,
    store: Store | None = None,
) -> NotificationEngine:
    settings = settings or get_settings()
    return NotificationEngine(
        store=store or build_store(settings),
        channel=channel,
        renderer=renderer,
        work_items=work_items,
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sweep ticker on startup and drain every queue on shutdown."""

    engine: NotificationEngine = app.state.notification_engine
    engine.start()
    try:
        yield
    finally:
        await engine.shutdown()


def create_app(engine: NotificationEngine) -> FastAPI:
    """Create the FastAPI application serving ``engine``."""

    app = FastAPI(title="chat-notifier", lifespan=lifespan)
    app.state.notification_engine = engine
    register_routes(app)
    return app


__all__ = ["build_engine", "build_store", "create_app", "lifespan"]
