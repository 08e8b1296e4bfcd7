"""Task visibility rules.

Projects themselves are visible to everyone; only their task contents are
gated. Rules are evaluated in order and the first match wins:

1. ``admin`` role
2. project owner
3. ``manager`` sharing the owner's department, or a manager who is a member
4. project member (explicit or added through assignment)
5. otherwise denied

Denial is reported as :class:`~teamdesk.errors.AuthorizationError` by
:meth:`AccessControlEvaluator.ensure_can_list_tasks`.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from teamdesk.errors import AuthorizationError
from teamdesk.models.entities import Project, ProjectSummary, Role, User
from teamdesk.store.base import EntityStore

log = structlog.get_logger(__name__)


class AccessControlEvaluator:
    def __init__(self, store: EntityStore) -> None:
        self._store = store

    async def can_list_tasks(self, user: User, project: Project) -> bool:
        return await self._decide(user, project) is not None

    async def ensure_can_list_tasks(self, user: User, project: Project) -> str:
        """Return the matching rule name, or raise AuthorizationError."""
        rule = await self._decide(user, project)
        if rule is None:
            log.info("task_listing_denied", user_id=user.id, project_id=project.id)
            raise AuthorizationError(
                "You do not have access to this project's tasks",
                {"project": project.id},
            )
        return rule

    async def summarize(self, user: User, projects: Sequence[Project]) -> list[ProjectSummary]:
        """Shallow listing of every project with the per-user task gate attached."""
        owners = await self._store.get_users({p.owner_id for p in projects})
        summaries = []
        for p in projects:
            rule = self._decide_with_owner(user, p, owners.get(p.owner_id))
            summaries.append(
                ProjectSummary(
                    id=p.id,
                    name=p.name,
                    description=p.description,
                    owner_id=p.owner_id,
                    status=p.status,
                    archived=p.archived,
                    member_count=len(p.members),
                    can_view_tasks=rule is not None,
                )
            )
        return summaries

    async def _decide(self, user: User, project: Project) -> str | None:
        owner = None
        # Only rule 3 needs the owner record.
        if user.has_role(Role.MANAGER) and project.owner_id != user.id:
            owner = await self._store.get_user(project.owner_id)
        return self._decide_with_owner(user, project, owner)

    @staticmethod
    def _decide_with_owner(user: User, project: Project, owner: User | None) -> str | None:
        if user.has_role(Role.ADMIN):
            return "admin"
        if project.owner_id == user.id:
            return "owner"
        if user.has_role(Role.MANAGER):
            same_department = owner is not None and owner.department == user.department
            if same_department or project.is_member(user.id):
                return "manager"
        if project.is_member(user.id):
            return "member"
        return None
