"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Make _helpers importable from test files
sys.path.insert(0, str(Path(__file__).parent))

from _helpers import RecordingChannel, make_user  # noqa: E402

from teamdesk.config import PolicyConfig  # noqa: E402
from teamdesk.models.entities import Department, Role, User  # noqa: E402
from teamdesk.notifications.channel import InProcessChannel  # noqa: E402
from teamdesk.persistence.db import DatabaseManager  # noqa: E402
from teamdesk.service import CollaborationService  # noqa: E402
from teamdesk.store.memory import InMemoryStore  # noqa: E402
from teamdesk.store.sqlite import SQLiteStore  # noqa: E402

__all__ = ["RecordingChannel", "make_user"]


@pytest.fixture
def config() -> PolicyConfig:
    return PolicyConfig()


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def channel() -> InProcessChannel:
    return InProcessChannel()


@pytest.fixture
def service(memory_store: InMemoryStore, channel: InProcessChannel) -> CollaborationService:
    return CollaborationService(memory_store, channel)


@pytest_asyncio.fixture
async def db(tmp_path: Path):
    manager = DatabaseManager(tmp_path / "teamdesk.db")
    await manager.initialize()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def sqlite_store(db: DatabaseManager) -> SQLiteStore:
    return SQLiteStore(db)


@pytest_asyncio.fixture
async def people(memory_store: InMemoryStore) -> dict[str, User]:
    """A small org: admin, an engineering manager and owner, two staff, an outsider."""
    users = {
        "admin": make_user("admin", Role.ADMIN),
        "manager": make_user("manager", Role.MANAGER, department=Department.ENGINEERING),
        "owner": make_user("owner", Role.MANAGER, department=Department.ENGINEERING),
        "staff": make_user("staff", Role.STAFF, department=Department.ENGINEERING),
        "staff2": make_user("staff2", Role.STAFF, department=Department.SALES),
        "outsider": make_user("outsider", Role.STAFF, department=Department.FINANCE),
        "sales_manager": make_user("salesmgr", Role.MANAGER, department=Department.SALES),
    }
    for user in users.values():
        await memory_store.save_user(user)
    return users
