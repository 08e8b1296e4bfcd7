"""Policy configuration for the collaboration core."""

from __future__ import annotations

from pydantic import BaseModel, Field

from teamdesk.models.entities import Role


class PolicyConfig(BaseModel):
    """Tunable rules shared by the validator, dispatcher and cascade manager."""
    max_assignees: int = Field(default=5, ge=0, le=5, description="Assignee ceiling per task")
    default_priority: int = Field(default=5, ge=1, le=10)
    archive_roles: frozenset[Role] = Field(
        default=frozenset({Role.ADMIN}),
        description="Roles allowed to archive any project",
    )
    owner_archive_roles: frozenset[Role] = Field(
        default=frozenset({Role.MANAGER, Role.ADMIN}),
        description="Roles that let a project owner archive their own project",
    )
    created_template: str = 'You have been assigned a new task: "{title}"'
    assigned_template: str = 'You have been assigned to task: "{title}"'
    unassigned_template: str = 'You have been removed from task: "{title}"'
    status_template: str = 'Task "{title}" status changed to {status}'
