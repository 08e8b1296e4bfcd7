"""Assignee list and title validation for task create/update."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from teamdesk.config import PolicyConfig
from teamdesk.errors import ValidationError
from teamdesk.store.base import EntityStore

log = structlog.get_logger(__name__)


def normalize_assignees(assignee_ids: Sequence[str] | None) -> list[str]:
    """Drop duplicates while keeping first-seen order."""
    if not assignee_ids:
        return []
    return list(dict.fromkeys(str(a) for a in assignee_ids))


def added_assignees(old: Sequence[str], new: Sequence[str]) -> list[str]:
    return [a for a in new if a not in old]


def removed_assignees(old: Sequence[str], new: Sequence[str]) -> list[str]:
    return [a for a in old if a not in new]


class AssignmentValidator:
    """Runs the same checks on create and update, before anything is written."""

    def __init__(self, store: EntityStore, config: PolicyConfig | None = None) -> None:
        self._store = store
        self._config = config or PolicyConfig()

    async def validate(self, title: str | None, assignee_ids: Sequence[str] | None) -> list[str]:
        """Return the normalized assignee list or raise ValidationError."""
        if title is None or not title.strip():
            raise ValidationError("title", "Task title is required")

        assignees = normalize_assignees(assignee_ids)
        if len(assignees) > self._config.max_assignees:
            raise ValidationError(
                "assignee",
                f"A task can have a maximum of {self._config.max_assignees} assignees",
            )

        if assignees:
            known = await self._store.get_users(assignees)
            unknown = [a for a in assignees if a not in known]
            if unknown:
                log.debug("unknown_assignees", unknown=unknown)
                raise ValidationError("assignee", f"Unknown user(s): {', '.join(unknown)}")

        return assignees
