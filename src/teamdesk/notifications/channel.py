"""Real-time channels: per-user topics carrying notification payloads."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Protocol

import structlog

log = structlog.get_logger(__name__)


class NotificationChannel(Protocol):
    """Best-effort push to a user's live session.

    ``publish`` returns True when at least one live subscriber received the
    payload. Offline users pick the notification up from the persisted record.
    """

    async def publish(self, user_id: str, payload: dict[str, Any]) -> bool: ...


class Subscription:
    """One live session listening on a user's topic."""

    def __init__(self, channel: InProcessChannel, user_id: str) -> None:
        self._channel = channel
        self.user_id = user_id
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def deliver(self, payload: dict[str, Any]) -> None:
        self._queue.put_nowait(payload)

    async def get(self, timeout: float | None = None) -> dict[str, Any]:
        return await asyncio.wait_for(self._queue.get(), timeout)

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._channel.unsubscribe(self)


class InProcessChannel:
    """Channel for single-process deployments and tests."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = {}

    def subscribe(self, user_id: str) -> Subscription:
        sub = Subscription(self, user_id)
        self._subscribers.setdefault(user_id, set()).add(sub)
        log.debug("channel_subscribed", user_id=user_id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.user_id)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self._subscribers[sub.user_id]

    def is_connected(self, user_id: str) -> bool:
        return bool(self._subscribers.get(user_id))

    async def publish(self, user_id: str, payload: dict[str, Any]) -> bool:
        subs = self._subscribers.get(user_id)
        if not subs:
            return False
        for sub in list(subs):
            sub.deliver(payload)
        return True


class RedisChannel:
    """Redis pub/sub channel. Topics are ``<prefix>:<user_id>``."""

    def __init__(self, redis_client: Any, prefix: str = "teamdesk:notifications") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def topic(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    async def publish(self, user_id: str, payload: dict[str, Any]) -> bool:
        receivers = await self._redis.publish(self.topic(user_id), json.dumps(payload))
        return receivers > 0
