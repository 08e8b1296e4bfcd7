"""Record types for users, projects, tasks and notifications."""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Role(str, Enum):
    """Non-exclusive capability tags."""
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


class Department(str, Enum):
    HR = "hr"
    IT = "it"
    SALES = "sales"
    CONSULTANCY = "consultancy"
    SYSTEMS = "systems"
    ENGINEERING = "engineering"
    FINANCE = "finance"
    MANAGING_DIRECTOR = "managing director"


class ProjectStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    DONE = "Done"


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    username: str
    roles: frozenset[Role]
    department: Department

    @field_validator("username")
    @classmethod
    def username_is_email(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL_RE.match(v):
            raise ValueError("Username must be an email address")
        return v

    @field_validator("roles")
    @classmethod
    def roles_not_empty(cls, v: frozenset[Role]) -> frozenset[Role]:
        if not v:
            raise ValueError("A user needs at least one role")
        return v

    def has_role(self, role: Role) -> bool:
        return role in self.roles


class Project(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str = ""
    owner_id: str
    status: ProjectStatus = ProjectStatus.TODO
    priority: int | None = Field(default=None, ge=1, le=10)
    archived: bool = False
    archived_at: datetime | None = None
    members: set[str] = Field(default_factory=set)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name must be a non-empty string")
        return v

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members


class Task(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    description: str = ""
    project_id: str
    owner_id: str
    assignee: list[str] = Field(default_factory=list, max_length=5)
    status: TaskStatus = TaskStatus.TODO
    priority: int = Field(default=5, ge=1, le=10)
    archived: bool = False
    archived_at: datetime | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title must be a non-empty string")
        return v


class Notification(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    message: str
    task_id: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    assignor_id: str | None = None
    read: bool = False
    created_at: datetime = Field(default_factory=_now)


class ProjectSummary(BaseModel):
    """Always-visible project layer; task contents stay behind ``can_view_tasks``."""

    id: str
    name: str
    description: str
    owner_id: str
    status: ProjectStatus
    archived: bool
    member_count: int
    can_view_tasks: bool
