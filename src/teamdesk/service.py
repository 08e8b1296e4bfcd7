"""Collaboration service: the validate, synchronize, notify pipelines.

Every public method takes the acting user's id first. Validation and
authorization run before any write; real-time pushes run in the background
and never affect the result.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from teamdesk.access.evaluator import AccessControlEvaluator
from teamdesk.archive.cascade import ArchiveCascadeManager
from teamdesk.archive.locks import ProjectLocks
from teamdesk.assignment.membership import MembershipSynchronizer
from teamdesk.assignment.validator import (
    AssignmentValidator,
    added_assignees,
    removed_assignees,
)
from teamdesk.config import PolicyConfig
from teamdesk.errors import AuthorizationError, NotFoundError, ValidationError
from teamdesk.models.entities import (
    Department,
    Notification,
    Project,
    ProjectStatus,
    ProjectSummary,
    Role,
    Task,
    TaskStatus,
    User,
)
from teamdesk.notifications.channel import NotificationChannel
from teamdesk.notifications.dispatcher import NotificationDispatcher
from teamdesk.store.base import EntityStore

log = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class TaskInput(BaseModel):
    """Fields accepted when creating a task."""

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: int | None = Field(default=None, ge=1, le=10)
    assignees: list[str] = Field(default_factory=list)


class TaskPatch(BaseModel):
    """Partial task update. ``None`` leaves a field unchanged."""

    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: int | None = Field(default=None, ge=1, le=10)
    assignees: list[str] | None = None


def _schema_error(exc: SchemaError) -> ValidationError:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "input"
    return ValidationError(field, first["msg"])


def _coerce(model: type[M], data: M | Mapping[str, Any]) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except SchemaError as exc:
        raise _schema_error(exc) from exc


class CollaborationService:
    def __init__(
        self,
        store: EntityStore,
        channel: NotificationChannel,
        config: PolicyConfig | None = None,
    ) -> None:
        self.store = store
        self.config = config or PolicyConfig()
        self.locks = ProjectLocks()
        self.validator = AssignmentValidator(store, self.config)
        self.membership = MembershipSynchronizer(store)
        self.access = AccessControlEvaluator(store)
        self.dispatcher = NotificationDispatcher(store, channel, self.config)
        self.archiver = ArchiveCascadeManager(store, self.locks)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def register_user(
        self,
        username: str,
        roles: set[Role] | frozenset[Role] | None = None,
        department: Department | str = Department.IT,
    ) -> User:
        try:
            user = User(
                username=username,
                roles=frozenset(roles if roles is not None else {Role.STAFF}),
                department=department,
            )
        except SchemaError as exc:
            raise _schema_error(exc) from exc
        await self.store.save_user(user)
        log.info("user_registered", user_id=user.id, roles=sorted(r.value for r in user.roles))
        return user

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        actor: str,
        name: str,
        description: str = "",
        *,
        status: ProjectStatus | str = ProjectStatus.TODO,
        priority: int | None = None,
        members: list[str] | None = None,
    ) -> Project:
        """Create a project owned by ``actor``. The owner is its first member."""
        owner = await self._require_user(actor)
        if members:
            known = await self.store.get_users(members)
            unknown = [m for m in members if m not in known]
            if unknown:
                raise ValidationError("members", f"Unknown user(s): {', '.join(unknown)}")
        try:
            project = Project(
                name=name,
                description=description,
                owner_id=owner.id,
                status=status,
                priority=priority,
                members={owner.id, *(members or [])},
            )
        except SchemaError as exc:
            raise _schema_error(exc) from exc
        await self.store.insert_project(project)
        log.info("project_created", project_id=project.id, owner_id=owner.id)
        return project

    async def list_projects(self, actor: str) -> list[ProjectSummary]:
        """Every project is visible; ``can_view_tasks`` reports the task gate."""
        user = await self._require_user(actor)
        projects = await self.store.list_projects()
        return await self.access.summarize(user, projects)

    async def set_archived(self, actor: str, project_id: str, target: bool) -> Project:
        """Archive or restore a project and all of its tasks.

        Needs one of ``archive_roles``, or ownership of the project combined with
        one of ``owner_archive_roles``.
        """
        user = await self._require_user(actor)
        project = await self._require_project(project_id)
        privileged = any(user.has_role(r) for r in self.config.archive_roles)
        elevated_owner = project.owner_id == user.id and any(
            user.has_role(r) for r in self.config.owner_archive_roles
        )
        if not (privileged or elevated_owner):
            log.info("archive_denied", user_id=user.id, project_id=project_id)
            raise AuthorizationError(
                "Archiving needs admin rights or a manager who owns the project",
                {"project": project_id},
            )
        return await self.archiver.set_archived(project_id, target)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(
        self, actor: str, project_id: str, data: TaskInput | Mapping[str, Any]
    ) -> Task:
        payload = _coerce(TaskInput, data)
        owner = await self._require_user(actor)
        await self._require_project(project_id)
        assignees = await self.validator.validate(payload.title, payload.assignees)

        async with self.locks.lock_for(project_id):
            # Re-read under the lock so the task inherits the current archive flag.
            project = await self._require_project(project_id)
            try:
                task = Task(
                    title=payload.title,
                    description=payload.description,
                    project_id=project.id,
                    owner_id=owner.id,
                    assignee=assignees,
                    status=payload.status,
                    priority=payload.priority or self.config.default_priority,
                    archived=project.archived,
                    archived_at=project.archived_at,
                )
            except SchemaError as exc:
                raise _schema_error(exc) from exc
            notifications = self.dispatcher.prepare_assignment(
                task,
                assignees,
                created=True,
                project_name=project.name,
                assignor_id=owner.id,
            )
            await self.membership.commit(task, notifications, create=True)

        log.info(
            "task_created",
            task_id=task.id,
            project_id=project.id,
            assignees=len(assignees),
            archived=task.archived,
        )
        self.dispatcher.publish_assignment(task, notifications)
        return task

    async def update_task(
        self, actor: str, task_id: str, patch: TaskPatch | Mapping[str, Any]
    ) -> Task:
        changes = _coerce(TaskPatch, patch)
        user = await self._require_user(actor)
        previous = await self._require_task(task_id)
        project = await self._require_project(previous.project_id)

        async with self.locks.lock_for(project.id):
            # Merge onto the row as it is now, so concurrent patches compose.
            current = await self._require_task(task_id)
            self._ensure_can_edit(user, current, project)

            title = changes.title if changes.title is not None else current.title
            requested = changes.assignees if changes.assignees is not None else current.assignee
            assignees = await self.validator.validate(title, requested)

            update: dict[str, Any] = {
                "title": title,
                "assignee": assignees,
                "updated_at": datetime.now(UTC),
            }
            if changes.description is not None:
                update["description"] = changes.description
            if changes.status is not None:
                update["status"] = changes.status
            if changes.priority is not None:
                update["priority"] = changes.priority
            try:
                task = Task.model_validate({**current.model_dump(), **update})
            except SchemaError as exc:
                raise _schema_error(exc) from exc

            added = added_assignees(current.assignee, task.assignee)
            removed = removed_assignees(current.assignee, task.assignee)
            notifications = self.dispatcher.prepare_assignment(
                task,
                added,
                created=False,
                project_name=project.name,
                assignor_id=user.id,
            )
            await self.membership.commit(task, notifications, create=False)

        log.info(
            "task_updated",
            task_id=task.id,
            added=len(added),
            removed=len(removed),
            status=task.status.value,
        )

        self.dispatcher.publish_assignment(task, notifications)
        if removed:
            self.dispatcher.notify_unassignment(task, removed)
        if task.status != current.status:
            self.dispatcher.notify_status_change(task, skip=user.id)
        return task

    async def list_tasks(self, actor: str, project_id: str) -> list[Task]:
        user = await self._require_user(actor)
        project = await self._require_project(project_id)
        rule = await self.access.ensure_can_list_tasks(user, project)
        tasks = await self.store.list_tasks(project_id)
        log.debug("tasks_listed", project_id=project_id, user_id=user.id, rule=rule, count=len(tasks))
        return tasks

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def list_notifications(self, actor: str, unread_only: bool = False) -> list[Notification]:
        user = await self._require_user(actor)
        return await self.store.list_notifications(user.id, unread_only=unread_only)

    async def mark_notification_read(self, actor: str, notification_id: str) -> Notification:
        user = await self._require_user(actor)
        notification = await self.store.get_notification(notification_id)
        if notification is None:
            raise NotFoundError("notification", notification_id)
        if notification.user_id != user.id:
            raise AuthorizationError(
                "Notifications can only be marked read by their recipient",
                {"notification": notification_id},
            )
        if not notification.read:
            await self.store.mark_notification_read(notification_id)
        return notification.model_copy(update={"read": True})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for background notification pushes to finish."""
        await self.dispatcher.drain()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _require_user(self, user_id: str) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def _require_project(self, project_id: str) -> Project:
        project = await self.store.get_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def _require_task(self, task_id: str) -> Task:
        task = await self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    @staticmethod
    def _ensure_can_edit(user: User, task: Task, project: Project) -> None:
        if (
            user.has_role(Role.ADMIN)
            or task.owner_id == user.id
            or user.id in task.assignee
            or project.owner_id == user.id
        ):
            return
        raise AuthorizationError("You cannot edit this task", {"task": task.id})
