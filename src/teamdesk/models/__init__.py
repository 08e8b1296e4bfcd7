"""Record types shared by every component."""

from __future__ import annotations

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

__all__ = [
    "Department",
    "Notification",
    "Project",
    "ProjectStatus",
    "ProjectSummary",
    "Role",
    "Task",
    "TaskStatus",
    "User",
]
