"""Notification bus: topic-based snapshot publication."""

from bigboat.bus.notification import (
    InMemoryNotificationBus,
    NotificationBus,
    SnapshotPayload,
    Subscription,
    Topic,
    publish_best_effort,
)

__all__ = [
    "InMemoryNotificationBus",
    "NotificationBus",
    "SnapshotPayload",
    "Subscription",
    "Topic",
    "publish_best_effort",
]
