"""Notification bus broadcasting full snapshots to topic subscribers.

Subscribers always receive complete replacement snapshots, never deltas, so
a slow subscriber only needs the most recent one. Each subscriber queue is
bounded and sheds its oldest snapshot when full.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from bigboat.utils.telemetry import (
    get_logger,
    record_notification,
    record_subscriber_drop,
)

SnapshotPayload = list[dict[str, Any]]


class Topic(str, Enum):
    """Bus topics."""

    INSTANCES = "instances"
    BUCKETS = "buckets"
    APPS = "apps"


class NotificationBus(ABC):
    """Publish side of the bus, as seen by the core."""

    @abstractmethod
    async def publish(self, topic: Topic, snapshot: SnapshotPayload) -> None:
        """Broadcast a full snapshot of ``topic`` to its subscribers."""


class Subscription:
    """Bounded snapshot queue for one subscriber.

    Iterate with ``async for`` to receive snapshots until the subscription is
    closed.
    """

    def __init__(self, topic: Topic, max_pending: int = 8) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self.topic = topic
        self.max_pending = max_pending
        self.dropped = 0
        self._pending: deque[SnapshotPayload] = deque()
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, snapshot: SnapshotPayload) -> None:
        """Enqueue a snapshot, shedding the oldest one when full."""
        if self._closed:
            return
        while len(self._pending) >= self.max_pending:
            self._pending.popleft()
            self.dropped += 1
            record_subscriber_drop(self.topic.value)
        self._pending.append(snapshot)
        self._ready.set()

    def close(self) -> None:
        self._closed = True
        self._ready.set()

    async def get(self) -> SnapshotPayload:
        """Wait for the next snapshot.

        Raises:
            StopAsyncIteration: If the subscription is closed and drained
        """
        while not self._pending:
            if self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()
        return self._pending.popleft()

    def __aiter__(self) -> AsyncIterator[SnapshotPayload]:
        return self

    async def __anext__(self) -> SnapshotPayload:
        return await self.get()


class InMemoryNotificationBus(NotificationBus):
    """In-process bus owning the per-topic subscriber registry."""

    def __init__(self, max_pending: int = 8) -> None:
        self.max_pending = max_pending
        self._subscribers: dict[Topic, set[Subscription]] = {t: set() for t in Topic}
        self._latest: dict[Topic, SnapshotPayload] = {}
        self._logger = get_logger("bigboat.bus")

    async def publish(self, topic: Topic, snapshot: SnapshotPayload) -> None:
        topic = Topic(topic)
        self._latest[topic] = snapshot
        subscribers = list(self._subscribers[topic])
        for subscription in subscribers:
            subscription.offer(snapshot)

        self._logger.debug(
            "Snapshot published",
            topic=topic.value,
            records=len(snapshot),
            subscribers=len(subscribers),
        )

    def subscribe(self, topic: Topic, replay_latest: bool = True) -> Subscription:
        """Register a subscriber.

        Args:
            topic: Topic to follow
            replay_latest: Deliver the last published snapshot immediately
        """
        topic = Topic(topic)
        subscription = Subscription(topic, self.max_pending)
        if replay_latest and topic in self._latest:
            subscription.offer(self._latest[topic])
        self._subscribers[topic].add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers[subscription.topic].discard(subscription)
        subscription.close()

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscribers[Topic(topic)])

    def latest(self, topic: Topic) -> SnapshotPayload | None:
        return self._latest.get(Topic(topic))

    async def close(self) -> None:
        for subscriptions in self._subscribers.values():
            for subscription in list(subscriptions):
                self.unsubscribe(subscription)


async def publish_best_effort(
    bus: NotificationBus, topic: Topic, snapshot: SnapshotPayload
) -> bool:
    """Publish and report success instead of raising.

    Subscribers recover from a lost snapshot with the next full publish, so a
    bus failure must not fail the store mutation that triggered it.
    """
    try:
        await bus.publish(topic, snapshot)
    except Exception as e:
        record_notification(Topic(topic).value, "error")
        get_logger("bigboat.bus").warning(
            "Snapshot publish failed",
            topic=Topic(topic).value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
    record_notification(Topic(topic).value, "success")
    return True
