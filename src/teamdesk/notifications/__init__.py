"""Notification dispatch and real-time channels."""

from __future__ import annotations

from teamdesk.notifications.channel import (
    InProcessChannel,
    NotificationChannel,
    RedisChannel,
    Subscription,
)
from teamdesk.notifications.dispatcher import NotificationDispatcher

__all__ = [
    "InProcessChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "RedisChannel",
    "Subscription",
]
