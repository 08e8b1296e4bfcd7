"""In-memory entity store for testing and development."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from teamdesk.errors import NotFoundError, ValidationError
from teamdesk.models.entities import Notification, Project, Task, User


class InMemoryStore:
    """Dict-backed store.

    Mutations never await between reading and writing a document, so each one is
    atomic with respect to other coroutines on the same event loop. Records are
    copied on the way in and out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._projects: dict[str, Project] = {}
        self._tasks: dict[str, Task] = {}
        self._notifications: dict[str, Notification] = {}

    # Users

    async def save_user(self, user: User) -> None:
        taken = next(
            (u for u in self._users.values() if u.username == user.username and u.id != user.id),
            None,
        )
        if taken is not None:
            raise ValidationError("username", f"{user.username} is already registered")
        self._users[user.id] = user.model_copy(deep=True)

    async def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        return {
            uid: self._users[uid].model_copy(deep=True)
            for uid in user_ids
            if uid in self._users
        }

    # Projects

    async def insert_project(self, project: Project) -> None:
        self._projects[project.id] = project.model_copy(deep=True)

    async def get_project(self, project_id: str) -> Project | None:
        project = self._projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    async def list_projects(self) -> list[Project]:
        projects = sorted(self._projects.values(), key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in projects]

    async def add_members(self, project_id: str, user_ids: Iterable[str]) -> set[str]:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        added = self._new_members(project, user_ids)
        project.members |= added
        return added

    async def cascade_archived(
        self, project_id: str, archived: bool, at: datetime | None
    ) -> int:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        # Build every replacement first, then swap them in together.
        updates = {
            t.id: t.model_copy(update={"archived": archived, "archived_at": at})
            for t in self._tasks.values()
            if t.project_id == project_id
        }
        new_project = project.model_copy(update={"archived": archived, "archived_at": at})
        self._tasks.update(updates)
        self._projects[project_id] = new_project
        return len(updates)

    # Tasks

    async def insert_task(self, task: Task) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    async def replace_task(self, task: Task) -> None:
        if task.id not in self._tasks:
            raise NotFoundError("task", task.id)
        self._tasks[task.id] = task.model_copy(deep=True)

    async def commit_task(
        self,
        task: Task,
        notifications: Sequence[Notification] = (),
        *,
        create: bool,
    ) -> set[str]:
        project = self._projects.get(task.project_id)
        if project is None:
            raise NotFoundError("project", task.project_id)
        if not create and task.id not in self._tasks:
            raise NotFoundError("task", task.id)
        # Stage everything, then apply with no await in between.
        added = self._new_members(project, task.assignee)
        stored = task.model_copy(deep=True)
        notes = {n.id: n.model_copy(deep=True) for n in notifications}

        self._tasks[task.id] = stored
        project.members |= added
        self._notifications.update(notes)
        return added

    async def get_task(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def list_tasks(self, project_id: str) -> list[Task]:
        tasks = [t for t in self._tasks.values() if t.project_id == project_id]
        return [t.model_copy(deep=True) for t in sorted(tasks, key=lambda t: t.created_at, reverse=True)]

    @staticmethod
    def _new_members(project: Project, user_ids: Iterable[str]) -> set[str]:
        return set(user_ids) - project.members

    # Notifications

    async def save_notification(self, notification: Notification) -> None:
        self._notifications[notification.id] = notification.model_copy(deep=True)

    async def get_notification(self, notification_id: str) -> Notification | None:
        n = self._notifications.get(notification_id)
        return n.model_copy(deep=True) if n else None

    async def list_notifications(
        self, user_id: str, unread_only: bool = False
    ) -> list[Notification]:
        found = [
            n for n in self._notifications.values()
            if n.user_id == user_id and not (unread_only and n.read)
        ]
        return [n.model_copy(deep=True) for n in sorted(found, key=lambda n: n.created_at, reverse=True)]

    async def mark_notification_read(self, notification_id: str) -> bool:
        n = self._notifications.get(notification_id)
        if n is None:
            return False
        self._notifications[notification_id] = n.model_copy(update={"read": True})
        return True
