"""Workspace bootstrap: logging, storage, channel and service wiring."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import structlog

from teamdesk.config import PolicyConfig
from teamdesk.notifications.channel import InProcessChannel, NotificationChannel, RedisChannel
from teamdesk.persistence.db import DatabaseManager
from teamdesk.service import CollaborationService
from teamdesk.settings import Settings
from teamdesk.store.base import EntityStore
from teamdesk.store.memory import InMemoryStore
from teamdesk.store.sqlite import SQLiteStore

logger = structlog.get_logger()


def configure_logging(settings: Settings) -> None:
    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)
    # ConsoleRenderer formats exc_info itself.
    renderers: list[Any] = (
        [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        if settings.log_format == "json"
        else [structlog.dev.ConsoleRenderer()]
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


@dataclass
class Workspace:
    service: CollaborationService
    store: EntityStore
    channel: NotificationChannel
    db: DatabaseManager | None = None


@asynccontextmanager
async def open_workspace(
    settings: Settings | None = None,
    policy: PolicyConfig | None = None,
) -> AsyncIterator[Workspace]:
    """Open storage and channel, yield a ready service, drain and close on exit."""
    settings = settings or Settings()

    db: DatabaseManager | None = None
    store: EntityStore
    if settings.store_backend == "sqlite":
        db = DatabaseManager(settings.database_path)
        await db.initialize()
        store = SQLiteStore(db)
    else:
        store = InMemoryStore()

    redis_client = None
    channel: NotificationChannel
    if settings.redis_url:
        from redis.asyncio import from_url

        redis_client = from_url(settings.redis_url)
        channel = RedisChannel(redis_client, prefix=settings.channel_prefix)
    else:
        channel = InProcessChannel()

    service = CollaborationService(store, channel, policy)
    logger.info(
        "workspace_opened",
        store=settings.store_backend,
        channel=type(channel).__name__,
    )
    try:
        yield Workspace(service=service, store=store, channel=channel, db=db)
    finally:
        await service.drain()
        if redis_client is not None:
            await redis_client.aclose()
        if db is not None:
            await db.close()
        logger.info("workspace_closed")
