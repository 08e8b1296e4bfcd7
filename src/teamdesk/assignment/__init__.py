"""Assignment validation and the membership it implies."""

from __future__ import annotations

from teamdesk.assignment.membership import MembershipSynchronizer
from teamdesk.assignment.validator import AssignmentValidator

__all__ = ["AssignmentValidator", "MembershipSynchronizer"]
