"""Tests for settings and workspace bootstrap."""

import pytest
import structlog

from teamdesk.main import configure_logging, open_workspace
from teamdesk.notifications.channel import InProcessChannel
from teamdesk.settings import Settings
from teamdesk.store.memory import InMemoryStore
from teamdesk.store.sqlite import SQLiteStore


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("TEAMDESK_STORE_BACKEND", "memory")
    monkeypatch.setenv("TEAMDESK_LOG_FORMAT", "console")
    settings = Settings(_env_file=None)
    assert settings.store_backend == "memory"
    assert settings.log_format == "console"
    assert settings.redis_url is None


def test_configure_logging_accepts_both_formats():
    configure_logging(Settings(_env_file=None, log_format="console", log_level="debug"))
    configure_logging(Settings(_env_file=None, log_format="json", log_level="bogus"))
    structlog.reset_defaults()


@pytest.mark.asyncio
async def test_memory_workspace():
    settings = Settings(_env_file=None, store_backend="memory")
    async with open_workspace(settings) as ws:
        assert isinstance(ws.store, InMemoryStore)
        assert isinstance(ws.channel, InProcessChannel)
        assert ws.db is None
        user = await ws.service.register_user("solo@example.com")
        assert await ws.store.get_user(user.id) is not None


@pytest.mark.asyncio
async def test_sqlite_workspace_persists_across_sessions(tmp_path):
    settings = Settings(_env_file=None, database_path=str(tmp_path / "data" / "td.db"))

    async with open_workspace(settings) as ws:
        assert isinstance(ws.store, SQLiteStore)
        owner = await ws.service.register_user("keeper@example.com")
        project = await ws.service.create_project(owner.id, "Durable")

    async with open_workspace(settings) as ws:
        summaries = await ws.service.list_projects(owner.id)
        assert [s.id for s in summaries] == [project.id]
        assert summaries[0].can_view_tasks
