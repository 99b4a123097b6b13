"""Unit tests for the notification bus."""

import asyncio

import pytest

from bigboat.bus import (
    InMemoryNotificationBus,
    NotificationBus,
    Subscription,
    Topic,
    publish_best_effort,
)


class ExplodingBus(NotificationBus):
    async def publish(self, topic, snapshot):
        raise ConnectionError("broker down")


class TestSubscription:
    """Test bounded subscriber queues."""

    @pytest.mark.asyncio
    async def test_delivers_in_order(self):
        subscription = Subscription(Topic.INSTANCES, max_pending=4)
        subscription.offer([{"name": "a"}])
        subscription.offer([{"name": "b"}])

        assert await subscription.get() == [{"name": "a"}]
        assert await subscription.get() == [{"name": "b"}]

    def test_sheds_oldest_when_full(self):
        """Test that a slow subscriber keeps the newest snapshots."""
        subscription = Subscription(Topic.INSTANCES, max_pending=2)
        for i in range(5):
            subscription.offer([{"n": i}])

        assert subscription.dropped == 3
        assert list(subscription._pending) == [[{"n": 3}], [{"n": 4}]]

    def test_rejects_empty_queue(self):
        with pytest.raises(ValueError):
            Subscription(Topic.APPS, max_pending=0)

    @pytest.mark.asyncio
    async def test_get_waits_for_offer(self):
        subscription = Subscription(Topic.BUCKETS)
        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)
        assert not waiter.done()

        subscription.offer([])

        assert await asyncio.wait_for(waiter, timeout=1.0) == []

    @pytest.mark.asyncio
    async def test_close_ends_iteration_after_drain(self):
        subscription = Subscription(Topic.BUCKETS)
        subscription.offer([{"name": "x"}])
        subscription.close()
        subscription.offer([{"name": "late"}])

        received = [snapshot async for snapshot in subscription]

        assert received == [[{"name": "x"}]]
        assert subscription.closed


class TestInMemoryNotificationBus:
    """Test topic fan-out."""

    @pytest.mark.asyncio
    async def test_publish_reaches_topic_subscribers_only(self):
        bus = InMemoryNotificationBus()
        instances = bus.subscribe(Topic.INSTANCES)
        buckets = bus.subscribe(Topic.BUCKETS)

        await bus.publish(Topic.INSTANCES, [{"name": "web1"}])

        assert await instances.get() == [{"name": "web1"}]
        assert len(buckets._pending) == 0
        assert bus.latest(Topic.INSTANCES) == [{"name": "web1"}]
        assert bus.latest(Topic.BUCKETS) is None

    @pytest.mark.asyncio
    async def test_replays_latest_snapshot(self):
        """Test that a late subscriber starts from the current snapshot."""
        bus = InMemoryNotificationBus()
        await bus.publish(Topic.APPS, [{"name": "old"}])
        await bus.publish(Topic.APPS, [{"name": "new"}])

        late = bus.subscribe(Topic.APPS)
        silent = bus.subscribe(Topic.APPS, replay_latest=False)

        assert await late.get() == [{"name": "new"}]
        assert len(silent._pending) == 0

    @pytest.mark.asyncio
    async def test_accepts_topic_names(self):
        bus = InMemoryNotificationBus()
        subscription = bus.subscribe("buckets")  # type: ignore[arg-type]

        await bus.publish("buckets", [])  # type: ignore[arg-type]

        assert subscription.topic is Topic.BUCKETS
        assert await subscription.get() == []

    @pytest.mark.asyncio
    async def test_unsubscribe_and_close(self):
        bus = InMemoryNotificationBus()
        first = bus.subscribe(Topic.INSTANCES)
        second = bus.subscribe(Topic.INSTANCES)
        assert bus.subscriber_count(Topic.INSTANCES) == 2

        bus.unsubscribe(first)
        assert first.closed
        assert bus.subscriber_count(Topic.INSTANCES) == 1

        await bus.close()
        assert second.closed
        assert bus.subscriber_count(Topic.INSTANCES) == 0

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_block_publisher(self):
        bus = InMemoryNotificationBus(max_pending=1)
        slow = bus.subscribe(Topic.INSTANCES)

        for i in range(10):
            await bus.publish(Topic.INSTANCES, [{"n": i}])

        assert await slow.get() == [{"n": 9}]
        assert slow.dropped == 9


class TestPublishBestEffort:
    """Test publish failure isolation."""

    @pytest.mark.asyncio
    async def test_success(self):
        bus = InMemoryNotificationBus()
        assert await publish_best_effort(bus, Topic.APPS, []) is True
        assert bus.latest(Topic.APPS) == []

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        assert await publish_best_effort(ExplodingBus(), Topic.APPS, []) is False
