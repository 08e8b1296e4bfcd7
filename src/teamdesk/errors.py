"""Error taxonomy for the collaboration core."""

from __future__ import annotations


class TeamdeskError(Exception):
    """Base exception for all teamdesk errors."""

    def __init__(self, message: str, details: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(TeamdeskError):
    """Malformed input. Raised before any write, so nothing was mutated."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid {field}: {reason}", {"field": field})
        self.field = field
        self.reason = reason


class AuthorizationError(TeamdeskError):
    """The caller lacks the role or membership the operation requires."""


class NotFoundError(TeamdeskError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity.capitalize()} not found", {entity: entity_id})
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(TeamdeskError):
    """A concurrent mutation or failed cascade was rolled back. Safe to retry."""

    retryable = True


class DispatchError(TeamdeskError):
    """A real-time push failed. Logged only; never surfaces to callers."""
