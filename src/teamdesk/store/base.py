"""Protocol for pluggable entity storage backends."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol

from teamdesk.models.entities import Notification, Project, Task, User


class EntityStore(Protocol):
    """Backend interface for users, projects, tasks and notifications.

    Every method is atomic per document. ``add_members`` is a true set union and
    ``cascade_archived`` flips a project and all of its tasks as one unit.
    ``commit_task`` inserts or replaces a task, set-adds its assignees to the
    project members and saves the given notifications as one unit; it returns
    the member ids that were new.
    """

    async def save_user(self, user: User) -> None: ...
    async def get_user(self, user_id: str) -> User | None: ...
    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]: ...

    async def insert_project(self, project: Project) -> None: ...
    async def get_project(self, project_id: str) -> Project | None: ...
    async def list_projects(self) -> list[Project]: ...
    async def add_members(self, project_id: str, user_ids: Iterable[str]) -> set[str]: ...
    async def cascade_archived(
        self, project_id: str, archived: bool, at: datetime | None
    ) -> int: ...

    async def insert_task(self, task: Task) -> None: ...
    async def replace_task(self, task: Task) -> None: ...
    async def commit_task(
        self,
        task: Task,
        notifications: Sequence[Notification] = (),
        *,
        create: bool,
    ) -> set[str]: ...
    async def get_task(self, task_id: str) -> Task | None: ...
    async def list_tasks(self, project_id: str) -> list[Task]: ...

    async def save_notification(self, notification: Notification) -> None: ...
    async def get_notification(self, notification_id: str) -> Notification | None: ...
    async def list_notifications(
        self, user_id: str, unread_only: bool = False
    ) -> list[Notification]: ...
    async def mark_notification_read(self, notification_id: str) -> bool: ...
