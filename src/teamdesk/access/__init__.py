"""Two-tier visibility: projects are public, their tasks are gated."""

from __future__ import annotations

from teamdesk.access.evaluator import AccessControlEvaluator

__all__ = ["AccessControlEvaluator"]
