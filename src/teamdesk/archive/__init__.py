"""Archive cascade and per-project locking."""

from __future__ import annotations

from teamdesk.archive.cascade import ArchiveCascadeManager
from teamdesk.archive.locks import ProjectLocks

__all__ = ["ArchiveCascadeManager", "ProjectLocks"]
