"""Tests for notification dispatch and channels."""

import json
import re

import pytest
from structlog.testing import capture_logs

from teamdesk.errors import DispatchError
from teamdesk.models.entities import Task, TaskStatus
from teamdesk.notifications.channel import InProcessChannel, RedisChannel
from teamdesk.notifications.dispatcher import NotificationDispatcher

from _helpers import FailingChannel, FakeRedis, RecordingChannel, SlowChannel

_VERB = re.compile(r"assigned|created", re.IGNORECASE)


def _task(*assignees: str, title: str = "Quarterly Report") -> Task:
    return Task(title=title, project_id="p1", owner_id="boss", assignee=list(assignees))


@pytest.mark.asyncio
async def test_assignment_persists_before_push(memory_store):
    channel = SlowChannel()
    dispatcher = NotificationDispatcher(memory_store, channel)

    created = await dispatcher.notify_assignment(_task("u1", "u2"), ["u1", "u2"], created=True)

    # Records exist while the push is still blocked.
    assert len(created) == 2
    stored = await memory_store.list_notifications("u1")
    assert len(stored) == 1
    assert "Quarterly Report" in stored[0].message
    assert _VERB.search(stored[0].message)
    assert channel.delivered == []

    channel.release.set()
    await dispatcher.drain()
    assert sorted(channel.delivered) == ["u1", "u2"]
    assert dispatcher.in_flight == 0


@pytest.mark.asyncio
async def test_update_message_uses_assigned_verb(memory_store):
    dispatcher = NotificationDispatcher(memory_store, RecordingChannel())
    [n] = await dispatcher.notify_assignment(_task("u1"), ["u1"], project_name="Ops", assignor_id="boss")
    assert re.search("assigned", n.message, re.IGNORECASE)
    assert n.project_name == "Ops"
    assert n.assignor_id == "boss"
    assert not n.read


@pytest.mark.asyncio
async def test_push_failure_is_isolated(memory_store):
    channel = FailingChannel()
    dispatcher = NotificationDispatcher(memory_store, channel)

    created = await dispatcher.notify_assignment(_task("u1"), ["u1"])
    await dispatcher.drain()

    assert channel.attempts == 1
    assert len(created) == 1
    assert len(await memory_store.list_notifications("u1")) == 1


@pytest.mark.asyncio
async def test_no_newly_added_means_no_notifications(memory_store):
    channel = RecordingChannel()
    dispatcher = NotificationDispatcher(memory_store, channel)
    assert await dispatcher.notify_assignment(_task("u1"), []) == []
    await dispatcher.drain()
    assert channel.published == []


@pytest.mark.asyncio
async def test_push_only_events_are_not_persisted(memory_store):
    channel = RecordingChannel()
    dispatcher = NotificationDispatcher(memory_store, channel)
    task = _task("u1", "u2").model_copy(update={"status": TaskStatus.DONE})

    dispatcher.notify_unassignment(task, ["gone"])
    dispatcher.notify_status_change(task, skip="u2")
    await dispatcher.drain()

    assert channel.events_for("gone") == ["task-unassigned"]
    assert channel.events_for("u1") == ["task-updated"]
    assert channel.events_for("u2") == []
    assert await memory_store.list_notifications("gone") == []
    [(_, payload)] = [p for p in channel.published if p[0] == "u1"]
    assert payload["message"] == 'Task "Quarterly Report" status changed to Done'


@pytest.mark.asyncio
async def test_in_process_channel_delivers_to_subscribers():
    channel = InProcessChannel()
    assert await channel.publish("u1", {"event": "x"}) is False

    sub = channel.subscribe("u1")
    assert channel.is_connected("u1")
    assert await channel.publish("u1", {"event": "x"}) is True
    assert await sub.get(timeout=1) == {"event": "x"}

    sub.close()
    assert not channel.is_connected("u1")
    assert await channel.publish("u1", {"event": "y"}) is False


@pytest.mark.asyncio
async def test_dispatch_payload_mirrors_record(memory_store):
    channel = InProcessChannel()
    sub = channel.subscribe("u1")
    dispatcher = NotificationDispatcher(memory_store, channel)

    [record] = await dispatcher.notify_assignment(_task("u1"), ["u1"], created=True)
    await dispatcher.drain()

    payload = await sub.get(timeout=1)
    assert payload["event"] == "task-assigned"
    assert payload["id"] == record.id
    assert payload["message"] == record.message
    assert payload["task_id"] == record.task_id


@pytest.mark.asyncio
async def test_redis_channel_publishes_json_on_user_topic():
    client = FakeRedis(receivers=0)
    channel = RedisChannel(client, prefix="td")

    assert await channel.publish("u1", {"event": "task-assigned", "message": "hi"}) is False
    [(topic, body)] = client.messages
    assert topic == "td:u1"
    assert json.loads(body) == {"event": "task-assigned", "message": "hi"}

    client.receivers = 2
    assert await channel.publish("u1", {"event": "task-assigned"}) is True


@pytest.mark.asyncio
async def test_push_failure_logged_as_dispatch_error(memory_store):
    dispatcher = NotificationDispatcher(memory_store, FailingChannel())

    with capture_logs() as logs:
        await dispatcher.notify_assignment(_task("u1"), ["u1"])
        await dispatcher.drain()

    [entry] = [e for e in logs if e["event"] == "dispatch_failed"]
    assert entry["log_level"] == "warning"
    assert isinstance(entry["exc_info"], DispatchError)
    assert isinstance(entry["exc_info"].__cause__, ConnectionError)
    assert entry["user_id"] == "u1"


def test_prepare_assignment_has_no_side_effects(memory_store):
    channel = RecordingChannel()
    dispatcher = NotificationDispatcher(memory_store, channel)
    notes = dispatcher.prepare_assignment(_task("u1", "u2"), ["u1", "u2", "u1"], created=True)
    assert [n.user_id for n in notes] == ["u1", "u2"]
    assert dispatcher.in_flight == 0
    assert channel.published == []
