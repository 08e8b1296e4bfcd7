"""Schema migrations for the teamdesk SQLite database."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from teamdesk.persistence.db import DatabaseManager

log = structlog.get_logger(__name__)

SCHEMA_VERSION = 1

_DDL_STATEMENTS = [
    # Schema version tracking
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version     INTEGER PRIMARY KEY,
        applied_at  TEXT NOT NULL DEFAULT (datetime('now'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id          TEXT PRIMARY KEY,
        username    TEXT NOT NULL UNIQUE,
        roles       TEXT NOT NULL DEFAULT '[]',
        department  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        owner_id    TEXT NOT NULL REFERENCES users(id),
        status      TEXT NOT NULL DEFAULT 'To Do',
        priority    INTEGER,
        archived    INTEGER NOT NULL DEFAULT 0,
        archived_at TEXT,
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    )
    """,
    # Membership is a set: the composite key makes INSERT OR IGNORE a set-add
    """
    CREATE TABLE IF NOT EXISTS project_members (
        project_id  TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        user_id     TEXT NOT NULL REFERENCES users(id),
        added_at    TEXT NOT NULL DEFAULT (datetime('now')),
        PRIMARY KEY (project_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id          TEXT PRIMARY KEY,
        project_id  TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        owner_id    TEXT NOT NULL,
        title       TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        assignee    TEXT NOT NULL DEFAULT '[]',
        status      TEXT NOT NULL DEFAULT 'To Do',
        priority    INTEGER NOT NULL DEFAULT 5,
        archived    INTEGER NOT NULL DEFAULT 0,
        archived_at TEXT,
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id           TEXT PRIMARY KEY,
        user_id      TEXT NOT NULL,
        message      TEXT NOT NULL,
        task_id      TEXT,
        project_id   TEXT,
        project_name TEXT,
        assignor_id  TEXT,
        read         INTEGER NOT NULL DEFAULT 0,
        created_at   TEXT NOT NULL
    )
    """,
    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_tasks_project         ON tasks(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_members_user          ON project_members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user    ON notifications(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_unread  ON notifications(user_id, read)",
]


async def run_migrations(db: DatabaseManager) -> None:
    """Create tables and indexes, then record the schema version."""
    for statement in _DDL_STATEMENTS:
        await db.execute_write(statement.strip())

    rows = await db.execute("SELECT MAX(version) AS v FROM schema_version")
    current_version = rows[0]["v"] if rows and rows[0]["v"] is not None else 0

    if current_version < SCHEMA_VERSION:
        await db.execute_write(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        log.info("migration_applied", version=SCHEMA_VERSION)
    else:
        log.debug("schema_already_current", version=SCHEMA_VERSION)
