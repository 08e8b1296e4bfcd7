"""Keeps project membership a superset of task assignees."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from teamdesk.errors import ConflictError, TeamdeskError
from teamdesk.models.entities import Notification, Task
from teamdesk.store.base import EntityStore

log = structlog.get_logger(__name__)


class MembershipSynchronizer:
    """Additive-only membership sync.

    Delegates to the store's atomic set-add, so concurrent syncs for the same
    project converge to the union of everything they added. There is no removal
    path: unassigning a user leaves their membership in place.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    async def sync(self, project_id: str, user_ids: Iterable[str]) -> set[str]:
        """Add every user to the project's members. Returns the ids that were new."""
        ids = list(user_ids)
        if not ids:
            return set()
        added = await self._store.add_members(project_id, ids)
        if added:
            log.info("members_added", project_id=project_id, added=sorted(added))
        return added

    async def commit(
        self,
        task: Task,
        notifications: Sequence[Notification] = (),
        *,
        create: bool,
    ) -> set[str]:
        """Write ``task`` with its assignees' membership and notifications as one unit.

        Nothing is visible if the write fails; unexpected store failures surface
        as a retryable :class:`ConflictError`.
        """
        try:
            added = await self._store.commit_task(task, notifications, create=create)
        except TeamdeskError:
            raise
        except Exception as exc:
            log.warning("task_commit_failed", task_id=task.id, create=create, error=str(exc))
            raise ConflictError(
                "Task write could not complete; no changes were applied",
                {"task": task.id},
            ) from exc
        if added:
            log.info("members_added", project_id=task.project_id, added=sorted(added))
        return added
