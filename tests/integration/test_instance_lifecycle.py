"""End-to-end tests of the control plane core.

A start request, the agent's snapshots and a stop request flow through the
lifecycle controller and the reconciler against a real record store.
"""

import asyncio

import pytest

from bigboat.agent import InMemoryCommandChannel
from bigboat.bus import InMemoryNotificationBus, Topic
from bigboat.core import LifecycleController, ReconciliationScheduler, Reconciler
from bigboat.schemas.models import App
from bigboat.storage import Filter, InMemoryRecordStore, SQLiteRecordStore
from bigboat.utils.stamps import StampSource, counter_clock

NGINX = App(
    name="nginx",
    version="1.0",
    docker_compose="services:\n  http:\n    image: nginx:1.0\n",
    bigboat_compose="name: nginx\ntags: [web]\n",
)


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryRecordStore()
    else:
        backend = SQLiteRecordStore(tmp_path / "bigboat.db")
    async with backend as store:
        yield store


@pytest.fixture
def bus():
    return InMemoryNotificationBus()


@pytest.fixture
def channel():
    return InMemoryCommandChannel()


@pytest.fixture
async def controller(store, bus, channel):
    controller = LifecycleController(store, bus, channel)
    await controller.create_or_update_app(NGINX)
    return controller


@pytest.fixture
def reconciler(store, bus):
    return Reconciler(store, bus, StampSource(counter_clock()))


async def web1(store):
    return await store.instances.find_one(Filter.where(name="web1"))


class TestInstanceLifecycle:
    """Start, observe and stop an instance."""

    @pytest.mark.asyncio
    async def test_start_reconcile_stop(self, store, bus, channel, controller, reconciler):
        """Test the full path of one instance from request to stop."""
        subscription = bus.subscribe(Topic.INSTANCES, replay_latest=False)

        await controller.start_instance("web1", "nginx", "1.0")

        record = await web1(store)
        assert record["state"] == "created"
        assert record["desired_state"] == "running"
        assert record["storage_bucket"] == "web1"
        [start] = channel.of_kind("start")
        assert start["instance"]["options"] == {"storageBucket": "web1"}
        assert (await subscription.get())[0]["state"] == "created"

        # The agent has not seen the instance yet
        await reconciler.reconcile({})
        assert (await web1(store))["state"] == "created"

        await reconciler.reconcile(
            {"web1": {"state": "running", "services": {"http": {"port": 80}}}}
        )
        record = await web1(store)
        assert record["state"] == "running"
        assert record["services"]["http"]["port"] == 80
        assert record["desired_state"] == "running"
        assert record["app"]["name"] == "nginx"
        published = bus.latest(Topic.INSTANCES)
        assert published[0]["services"] == {"http": {"port": 80}}

        await controller.stop_instance("web1", stopped_by="ops")
        record = await web1(store)
        assert record["desired_state"] == "stopped"
        assert record["state"] == "running"
        assert len(channel.of_kind("stop")) == 1

        await reconciler.reconcile({"web1": {"state": "stopped", "services": {}}})
        record = await web1(store)
        assert record["state"] == "stopped"
        assert record["desired_state"] == "stopped"
        assert record["stopped_by"] == "ops"

        # The agent no longer reports the instance
        result = await reconciler.reconcile({})
        assert result.removed == 1
        assert await web1(store) is None
        assert bus.latest(Topic.INSTANCES) == []

    @pytest.mark.asyncio
    async def test_snapshot_without_state(self, store, controller, reconciler):
        await controller.start_instance("web1", "nginx", "1.0")

        await reconciler.reconcile({"web1": {"services": {"http": {"port": 80}}}})

        record = await web1(store)
        assert record["state"] == "unknown"
        assert record["services"] == {"http": {"port": 80}}

    @pytest.mark.asyncio
    async def test_instances_started_elsewhere_are_adopted(self, store, reconciler):
        await reconciler.reconcile(
            {
                "manual": {
                    "state": "running",
                    "storage_bucket": "manual-data",
                    "app": {"name": "redis", "version": "7"},
                }
            }
        )

        record = await store.instances.find_one(Filter.where(name="manual"))
        assert record["storage_bucket"] == "manual-data"
        assert record["app"]["name"] == "redis"
        assert "desired_state" not in record

    @pytest.mark.asyncio
    async def test_concurrent_snapshots_through_scheduler(
        self, store, controller, reconciler
    ):
        """Test that bursts of snapshots end at the newest reported state."""
        await controller.start_instance("web1", "nginx", "1.0")
        scheduler = ReconciliationScheduler(reconciler)
        await scheduler.start()
        try:
            waiters = [
                scheduler.submit({"web1": {"state": state}})
                for state in ("running", "stopped", "running")
            ]
            results = await asyncio.gather(*waiters)
        finally:
            await scheduler.stop()

        assert results[-1].stamp == reconciler.stamps.last
        assert (await web1(store))["state"] == "running"


class TestBucketOperations:
    """Bucket locks persist until the agent's work is reflected."""

    @pytest.mark.asyncio
    async def test_copy_then_delete(self, store, bus, channel, controller):
        await store.buckets.insert({"name": "web1", "is_locked": False})

        await controller.copy_bucket("web1", "web1-backup")
        await controller.delete_bucket("web1")

        buckets = {b["name"]: b["isLocked"] for b in bus.latest(Topic.BUCKETS)}
        assert buckets == {"web1": True, "web1-backup": True}
        assert [c["kind"] for c in channel.sent] == ["copyBucket", "deleteBucket"]
