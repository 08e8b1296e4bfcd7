"""Per-project asyncio locks."""

from __future__ import annotations

import asyncio
import weakref


class ProjectLocks:
    """One lock per project id; different projects never contend.

    Locks are held weakly, so an idle project's lock is collected once no
    coroutine references it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
