"""SQLite-backed entity store for durable persistence."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

import aiosqlite
import structlog

from teamdesk.errors import NotFoundError, ValidationError
from teamdesk.models.entities import Notification, Project, Task, User
from teamdesk.persistence.db import DatabaseManager

log = structlog.get_logger(__name__)

_UPSERT_USER = """
    INSERT INTO users (id, username, roles, department) VALUES (?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        username   = excluded.username,
        roles      = excluded.roles,
        department = excluded.department
"""

_INSERT_PROJECT = """
    INSERT INTO projects (
        id, name, description, owner_id, status, priority,
        archived, archived_at, created_at, updated_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_ADD_MEMBER = "INSERT OR IGNORE INTO project_members (project_id, user_id) VALUES (?, ?)"

_INSERT_TASK = """
    INSERT INTO tasks (
        id, project_id, owner_id, title, description, assignee,
        status, priority, archived, archived_at, created_at, updated_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_UPDATE_TASK = """
    UPDATE tasks SET
        title = ?, description = ?, assignee = ?, status = ?, priority = ?,
        archived = ?, archived_at = ?, updated_at = ?
    WHERE id = ?
"""

_INSERT_NOTIFICATION = """
    INSERT INTO notifications (
        id, user_id, message, task_id, project_id, project_name,
        assignor_id, read, created_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO NOTHING
"""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO datetime string, always returning a UTC-aware datetime."""
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        roles=frozenset(json.loads(row["roles"])),
        department=row["department"],
    )


def _row_to_project(row: dict[str, Any], members: set[str]) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        owner_id=row["owner_id"],
        status=row["status"],
        priority=row["priority"],
        archived=bool(row["archived"]),
        archived_at=_parse_dt(row["archived_at"]),
        members=members,
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _row_to_task(row: dict[str, Any]) -> Task:
    return Task(
        id=row["id"],
        project_id=row["project_id"],
        owner_id=row["owner_id"],
        title=row["title"],
        description=row["description"],
        assignee=json.loads(row["assignee"]),
        status=row["status"],
        priority=row["priority"],
        archived=bool(row["archived"]),
        archived_at=_parse_dt(row["archived_at"]),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _row_to_notification(row: dict[str, Any]) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        message=row["message"],
        task_id=row["task_id"],
        project_id=row["project_id"],
        project_name=row["project_name"],
        assignor_id=row["assignor_id"],
        read=bool(row["read"]),
        created_at=_parse_dt(row["created_at"]),
    )


def _task_insert_params(task: Task) -> tuple[Any, ...]:
    return (
        task.id,
        task.project_id,
        task.owner_id,
        task.title,
        task.description,
        json.dumps(task.assignee),
        task.status.value,
        task.priority,
        int(task.archived),
        _iso(task.archived_at),
        _iso(task.created_at),
        _iso(task.updated_at),
    )


def _task_update_params(task: Task) -> tuple[Any, ...]:
    return (
        task.title,
        task.description,
        json.dumps(task.assignee),
        task.status.value,
        task.priority,
        int(task.archived),
        _iso(task.archived_at),
        _iso(task.updated_at),
        task.id,
    )


def _notification_params(n: Notification) -> tuple[Any, ...]:
    return (
        n.id,
        n.user_id,
        n.message,
        n.task_id,
        n.project_id,
        n.project_name,
        n.assignor_id,
        int(n.read),
        _iso(n.created_at),
    )


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


class SQLiteStore:
    """Durable SQLite-backed entity store."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    # Users

    async def save_user(self, user: User) -> None:
        params = (
            user.id,
            user.username,
            json.dumps(sorted(r.value for r in user.roles)),
            user.department.value,
        )
        try:
            await self._db.execute_write(_UPSERT_USER, params)
        except aiosqlite.IntegrityError as exc:
            raise ValidationError("username", f"{user.username} is already registered") from exc
        log.debug("user_saved", user_id=user.id)

    async def get_user(self, user_id: str) -> User | None:
        rows = await self._db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        return _row_to_user(rows[0]) if rows else None

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        rows = await self._db.execute(
            f"SELECT * FROM users WHERE id IN ({_placeholders(len(ids))})", tuple(ids)
        )
        return {row["id"]: _row_to_user(row) for row in rows}

    # Projects

    async def insert_project(self, project: Project) -> None:
        params = (
            project.id,
            project.name,
            project.description,
            project.owner_id,
            project.status.value,
            project.priority,
            int(project.archived),
            _iso(project.archived_at),
            _iso(project.created_at),
            _iso(project.updated_at),
        )
        async with self._db.transaction() as tx:
            await tx.execute_write(_INSERT_PROJECT, params)
            await tx.execute_many(_ADD_MEMBER, [(project.id, uid) for uid in project.members])
        log.debug("project_saved", project_id=project.id)

    async def get_project(self, project_id: str) -> Project | None:
        rows = await self._db.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
        if not rows:
            return None
        members = await self._db.execute(
            "SELECT user_id FROM project_members WHERE project_id = ?", (project_id,)
        )
        return _row_to_project(rows[0], {m["user_id"] for m in members})

    async def list_projects(self) -> list[Project]:
        rows = await self._db.execute("SELECT * FROM projects ORDER BY created_at DESC")
        member_rows = await self._db.execute("SELECT project_id, user_id FROM project_members")
        members: dict[str, set[str]] = {}
        for m in member_rows:
            members.setdefault(m["project_id"], set()).add(m["user_id"])
        return [_row_to_project(r, members.get(r["id"], set())) for r in rows]

    async def add_members(self, project_id: str, user_ids: Iterable[str]) -> set[str]:
        """Set-add: existing members are ignored by the composite primary key."""
        added: set[str] = set()
        async with self._db.transaction() as tx:
            exists = await tx.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,))
            if not exists:
                raise NotFoundError("project", project_id)
            for uid in dict.fromkeys(user_ids):
                if await tx.execute_write(_ADD_MEMBER, (project_id, uid)):
                    added.add(uid)
        return added

    async def cascade_archived(
        self, project_id: str, archived: bool, at: datetime | None
    ) -> int:
        now = _iso(datetime.now(UTC))
        async with self._db.transaction() as tx:
            found = await tx.execute_write(
                "UPDATE projects SET archived = ?, archived_at = ?, updated_at = ? WHERE id = ?",
                (int(archived), _iso(at), now, project_id),
            )
            if not found:
                raise NotFoundError("project", project_id)
            count = await tx.execute_write(
                "UPDATE tasks SET archived = ?, archived_at = ? WHERE project_id = ?",
                (int(archived), _iso(at), project_id),
            )
        log.debug("cascade_committed", project_id=project_id, archived=archived, tasks=count)
        return count

    # Tasks

    async def insert_task(self, task: Task) -> None:
        await self._db.execute_write(_INSERT_TASK, _task_insert_params(task))
        log.debug("task_saved", task_id=task.id, project_id=task.project_id)

    async def replace_task(self, task: Task) -> None:
        if not await self._db.execute_write(_UPDATE_TASK, _task_update_params(task)):
            raise NotFoundError("task", task.id)

    async def commit_task(
        self,
        task: Task,
        notifications: Sequence[Notification] = (),
        *,
        create: bool,
    ) -> set[str]:
        added: set[str] = set()
        async with self._db.transaction() as tx:
            exists = await tx.execute("SELECT 1 FROM projects WHERE id = ?", (task.project_id,))
            if not exists:
                raise NotFoundError("project", task.project_id)
            if create:
                await tx.execute_write(_INSERT_TASK, _task_insert_params(task))
            elif not await tx.execute_write(_UPDATE_TASK, _task_update_params(task)):
                raise NotFoundError("task", task.id)
            for uid in dict.fromkeys(task.assignee):
                if await tx.execute_write(_ADD_MEMBER, (task.project_id, uid)):
                    added.add(uid)
            if notifications:
                await tx.execute_many(
                    _INSERT_NOTIFICATION, [_notification_params(n) for n in notifications]
                )
        log.debug("task_committed", task_id=task.id, created=create, members_added=len(added))
        return added

    async def get_task(self, task_id: str) -> Task | None:
        rows = await self._db.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return _row_to_task(rows[0]) if rows else None

    async def list_tasks(self, project_id: str) -> list[Task]:
        rows = await self._db.execute(
            "SELECT * FROM tasks WHERE project_id = ? ORDER BY created_at DESC", (project_id,)
        )
        return [_row_to_task(r) for r in rows]

    # Notifications

    async def save_notification(self, notification: Notification) -> None:
        await self._db.execute_write(_INSERT_NOTIFICATION, _notification_params(notification))

    async def get_notification(self, notification_id: str) -> Notification | None:
        rows = await self._db.execute(
            "SELECT * FROM notifications WHERE id = ?", (notification_id,)
        )
        return _row_to_notification(rows[0]) if rows else None

    async def list_notifications(
        self, user_id: str, unread_only: bool = False
    ) -> list[Notification]:
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND read = 0"
        rows = await self._db.execute(sql + " ORDER BY created_at DESC", (user_id,))
        return [_row_to_notification(r) for r in rows]

    async def mark_notification_read(self, notification_id: str) -> bool:
        affected = await self._db.execute_write(
            "UPDATE notifications SET read = 1 WHERE id = ?", (notification_id,)
        )
        return affected > 0
