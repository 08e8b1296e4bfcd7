"""Assignment notifications: persisted record first, live push second."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog

from teamdesk.config import PolicyConfig
from teamdesk.errors import DispatchError
from teamdesk.models.entities import Notification, Task
from teamdesk.notifications.channel import NotificationChannel
from teamdesk.store.base import EntityStore

log = structlog.get_logger(__name__)

EVENT_ASSIGNED = "task-assigned"
EVENT_UNASSIGNED = "task-unassigned"
EVENT_UPDATED = "task-updated"


class NotificationDispatcher:
    """Creates notifications and pushes them to live sessions.

    The persisted :class:`Notification` is written before the caller gets its
    response and is the durable source of truth. The push runs as a background
    task; failures are logged as :class:`DispatchError` and never reach the
    caller.
    """

    def __init__(
        self,
        store: EntityStore,
        channel: NotificationChannel,
        config: PolicyConfig | None = None,
    ) -> None:
        self._store = store
        self._channel = channel
        self._config = config or PolicyConfig()
        self._pending: set[asyncio.Task[bool]] = set()

    def prepare_assignment(
        self,
        task: Task,
        newly_added: Sequence[str],
        *,
        created: bool = False,
        project_name: str | None = None,
        assignor_id: str | None = None,
    ) -> list[Notification]:
        """Build one unsaved notification per newly added assignee."""
        template = self._config.created_template if created else self._config.assigned_template
        message = template.format(title=task.title)
        return [
            Notification(
                user_id=user_id,
                message=message,
                task_id=task.id,
                project_id=task.project_id,
                project_name=project_name,
                assignor_id=assignor_id,
            )
            for user_id in dict.fromkeys(newly_added)
        ]

    def publish_assignment(self, task: Task, notifications: Sequence[Notification]) -> None:
        """Push already persisted assignment notifications in the background."""
        for notification in notifications:
            self._push(notification, EVENT_ASSIGNED)
        if notifications:
            log.info(
                "assignment_notified",
                task_id=task.id,
                users=[n.user_id for n in notifications],
            )

    async def notify_assignment(
        self,
        task: Task,
        newly_added: Sequence[str],
        *,
        created: bool = False,
        project_name: str | None = None,
        assignor_id: str | None = None,
    ) -> list[Notification]:
        """Persist and push one notification per newly added assignee.

        For a task already stored. Task writes save their notifications together
        with the task through :meth:`MembershipSynchronizer.commit` and then call
        :meth:`publish_assignment`.
        """
        notifications = self.prepare_assignment(
            task,
            newly_added,
            created=created,
            project_name=project_name,
            assignor_id=assignor_id,
        )
        for notification in notifications:
            await self._store.save_notification(notification)
        self.publish_assignment(task, notifications)
        return notifications

    def notify_unassignment(self, task: Task, removed: Sequence[str]) -> None:
        """Push-only: removed assignees are told live, nothing is persisted."""
        message = self._config.unassigned_template.format(title=task.title)
        for user_id in dict.fromkeys(removed):
            self._push(self._transient(task, user_id, message), EVENT_UNASSIGNED)

    def notify_status_change(self, task: Task, skip: str | None = None) -> None:
        """Push-only status update to every current assignee except ``skip``."""
        message = self._config.status_template.format(title=task.title, status=task.status.value)
        for user_id in task.assignee:
            if user_id != skip:
                self._push(self._transient(task, user_id, message), EVENT_UPDATED)

    async def drain(self) -> None:
        """Wait for every in-flight push to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _transient(task: Task, user_id: str, message: str) -> Notification:
        return Notification(
            user_id=user_id,
            message=message,
            task_id=task.id,
            project_id=task.project_id,
        )

    def _push(self, notification: Notification, event: str) -> None:
        payload = {"event": event, **notification.model_dump(mode="json")}
        push = asyncio.create_task(self._deliver(notification.user_id, payload))
        self._pending.add(push)
        push.add_done_callback(self._pending.discard)

    async def _deliver(self, user_id: str, payload: dict[str, Any]) -> bool:
        try:
            delivered = await self._channel.publish(user_id, payload)
        except Exception as exc:
            err = DispatchError("Real-time push failed", {"user": user_id, "event": payload["event"]})
            err.__cause__ = exc
            log.warning("dispatch_failed", user_id=user_id, event=payload["event"], exc_info=err)
            return False
        if not delivered:
            log.debug("dispatch_offline", user_id=user_id, event=payload["event"])
        return delivered
