"""Project archival with task cascade."""

from __future__ import annotations

from datetime import UTC, datetime

import structlog

from teamdesk.archive.locks import ProjectLocks
from teamdesk.errors import ConflictError, NotFoundError
from teamdesk.models.entities import Project
from teamdesk.store.base import EntityStore

log = structlog.get_logger(__name__)


class ArchiveCascadeManager:
    """Flips a project's archived flag together with every task it owns.

    The store applies the change as one unit. If it fails, nothing changed and
    the caller gets a retryable :class:`ConflictError`.
    """

    def __init__(self, store: EntityStore, locks: ProjectLocks | None = None) -> None:
        self._store = store
        self._locks = locks or ProjectLocks()

    async def set_archived(self, project_id: str, target: bool) -> Project:
        async with self._locks.lock_for(project_id):
            project = await self._store.get_project(project_id)
            if project is None:
                raise NotFoundError("project", project_id)
            if project.archived == target:
                log.debug("archive_noop", project_id=project_id, archived=target)
                return project

            at = datetime.now(UTC) if target else None
            try:
                count = await self._store.cascade_archived(project_id, target, at)
            except NotFoundError:
                raise
            except Exception as exc:
                log.warning(
                    "archive_cascade_failed",
                    project_id=project_id,
                    archived=target,
                    error=str(exc),
                )
                raise ConflictError(
                    "Archive cascade could not complete; no changes were applied",
                    {"project": project_id},
                ) from exc

            updated = await self._verify(project_id, target)

        log.info("archive_cascade_applied", project_id=project_id, archived=target, tasks=count)
        return updated

    async def _verify(self, project_id: str, target: bool) -> Project:
        project = await self._store.get_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        tasks = await self._store.list_tasks(project_id)
        stale = [t.id for t in tasks if t.archived != target]
        if project.archived != target or stale:
            raise ConflictError(
                "Archive state diverged after cascade",
                {"project": project_id, "stale_tasks": str(len(stale))},
            )
        return project
