"""Entity store backends."""

from __future__ import annotations

from teamdesk.store.base import EntityStore
from teamdesk.store.memory import InMemoryStore
from teamdesk.store.sqlite import SQLiteStore

__all__ = ["EntityStore", "InMemoryStore", "SQLiteStore"]
