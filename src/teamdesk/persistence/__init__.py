"""Persistence layer for teamdesk: SQLite-backed durable storage."""

from __future__ import annotations

from teamdesk.persistence.db import DatabaseManager, Transaction
from teamdesk.persistence.migrations import run_migrations

__all__ = [
    "DatabaseManager",
    "Transaction",
    "run_migrations",
]
