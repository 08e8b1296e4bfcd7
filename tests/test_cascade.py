"""Tests for the archive cascade and per-project locks."""

import asyncio
from datetime import datetime

import pytest

from teamdesk.archive.cascade import ArchiveCascadeManager
from teamdesk.archive.locks import ProjectLocks
from teamdesk.errors import ConflictError, NotFoundError
from teamdesk.models.entities import Project, Role, Task
from teamdesk.service import CollaborationService
from teamdesk.store.memory import InMemoryStore

from _helpers import FailingCascadeStore, RecordingChannel, YieldingCascadeStore, make_user


async def _project_with_tasks(store: InMemoryStore, n: int = 3) -> Project:
    owner = make_user("cascade-owner")
    await store.save_user(owner)
    project = Project(name="Archive Test", owner_id=owner.id, members={owner.id})
    await store.insert_project(project)
    for i in range(n):
        await store.insert_task(Task(title=f"T{i}", project_id=project.id, owner_id=owner.id))
    return project


class DroppingCascadeStore(InMemoryStore):
    """Flips the project but silently skips its tasks."""

    async def cascade_archived(self, project_id: str, archived: bool, at: datetime | None) -> int:
        project = self._projects[project_id]
        self._projects[project_id] = project.model_copy(update={"archived": archived})
        return 0


def test_locks_are_per_project():
    locks = ProjectLocks()
    a = locks.lock_for("a")
    assert locks.lock_for("a") is a
    assert locks.lock_for("b") is not a


@pytest.mark.asyncio
async def test_archive_and_unarchive_cascade(memory_store):
    project = await _project_with_tasks(memory_store)
    manager = ArchiveCascadeManager(memory_store)

    archived = await manager.set_archived(project.id, True)
    assert archived.archived and archived.archived_at is not None
    tasks = await memory_store.list_tasks(project.id)
    assert len(tasks) == 3
    assert all(t.archived and t.archived_at == archived.archived_at for t in tasks)

    restored = await manager.set_archived(project.id, False)
    assert not restored.archived and restored.archived_at is None
    tasks = await memory_store.list_tasks(project.id)
    assert all(not t.archived and t.archived_at is None for t in tasks)


@pytest.mark.asyncio
async def test_self_transition_is_noop(memory_store):
    project = await _project_with_tasks(memory_store)
    manager = ArchiveCascadeManager(memory_store)

    first = await manager.set_archived(project.id, True)
    again = await manager.set_archived(project.id, True)
    assert again.archived_at == first.archived_at

    untouched = await manager.set_archived(project.id, False)
    assert await manager.set_archived(project.id, False) == untouched


@pytest.mark.asyncio
async def test_unknown_project(memory_store):
    with pytest.raises(NotFoundError):
        await ArchiveCascadeManager(memory_store).set_archived("missing", True)


@pytest.mark.asyncio
async def test_failed_cascade_is_retryable_conflict_and_changes_nothing():
    store = FailingCascadeStore()
    project = await _project_with_tasks(store)

    with pytest.raises(ConflictError) as exc_info:
        await ArchiveCascadeManager(store).set_archived(project.id, True)
    assert exc_info.value.retryable

    assert not (await store.get_project(project.id)).archived
    assert all(not t.archived for t in await store.list_tasks(project.id))


@pytest.mark.asyncio
async def test_divergent_state_is_reported():
    store = DroppingCascadeStore()
    project = await _project_with_tasks(store)
    with pytest.raises(ConflictError, match="diverged"):
        await ArchiveCascadeManager(store).set_archived(project.id, True)


@pytest.mark.asyncio
async def test_concurrent_creation_lands_in_archived_state():
    store = YieldingCascadeStore()
    service = CollaborationService(store, RecordingChannel())
    admin = make_user("race-admin", Role.ADMIN)
    await store.save_user(admin)
    project = await service.create_project(admin.id, "Race")

    async def create(i: int) -> Task:
        await asyncio.sleep(0)
        return await service.create_task(admin.id, project.id, {"title": f"race {i}"})

    await asyncio.gather(
        service.set_archived(admin.id, project.id, True),
        *(create(i) for i in range(5)),
    )

    stored = await store.get_project(project.id)
    tasks = await store.list_tasks(project.id)
    assert stored.archived
    assert len(tasks) == 5
    assert all(t.archived for t in tasks)


@pytest.mark.asyncio
async def test_cascades_on_different_projects_do_not_share_locks(memory_store):
    locks = ProjectLocks()
    manager = ArchiveCascadeManager(memory_store, locks)
    a = await _project_with_tasks(memory_store, 1)
    b_owner = make_user("other-owner")
    await memory_store.save_user(b_owner)
    b = Project(name="B", owner_id=b_owner.id, members={b_owner.id})
    await memory_store.insert_project(b)

    async with locks.lock_for(a.id):
        # A held lock on project A must not block project B.
        result = await asyncio.wait_for(manager.set_archived(b.id, True), timeout=1)
    assert result.archived
