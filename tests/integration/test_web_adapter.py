"""Integration tests for Web adapter functionality.

Tests REST endpoints, snapshot submission, WebSocket streaming and health
endpoints against an in-memory control plane.
"""

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from bigboat.adapters.web import WebAdapter, create_web_adapter
from bigboat.agent import AgentCommandChannel, InMemoryCommandChannel
from bigboat.catalog import AppStoreClient
from bigboat.config import Config
from bigboat.storage import InMemoryRecordStore
from bigboat.utils.stamps import StampSource, counter_clock

NGINX = {
    "name": "nginx",
    "version": "1.0",
    "dockerCompose": "services:\n  http:\n    image: nginx:1.0\n",
    "bigboatCompose": "name: nginx\ntags: [web, proxy]\n",
}


class BrokenChannel(AgentCommandChannel):
    """Channel whose agent never answers."""

    async def _deliver(self, command):
        raise ConnectionError("agent unreachable")


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def channel():
    return InMemoryCommandChannel()


@pytest.fixture
def adapter(store, channel):
    return WebAdapter(store, channel=channel, stamps=StampSource(counter_clock()))


@pytest.fixture
def client(adapter):
    with TestClient(adapter.app) as client:
        assert client.put("/apps", json=NGINX).status_code == 200
        yield client


class TestAppEndpoints:
    """Test app definition endpoints."""

    def test_put_and_list(self, client):
        apps = client.get("/apps").json()

        assert len(apps) == 1
        assert apps[0]["name"] == "nginx"
        assert apps[0]["tags"] == ["web", "proxy"]
        assert "dockerCompose" in apps[0]

    def test_invalid_bigboat_compose(self, client):
        response = client.put("/apps", json={**NGINX, "bigboatCompose": "tags: [\n"})

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_COMPOSE"

    def test_delete(self, client):
        assert client.delete("/apps/nginx/1.0").json() == {"removed": 1}
        assert client.delete("/apps/nginx/1.0").json() == {"removed": 0}
        assert client.get("/apps").json() == []


class TestInstanceEndpoints:
    """Test instance lifecycle endpoints."""

    def test_start_instance(self, client, channel):
        response = client.post(
            "/instances",
            json={"name": "web1", "appName": "nginx", "appVersion": "1.0"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["state"] == "created"
        assert body["desiredState"] == "running"
        assert body["storageBucket"] == "web1"
        assert channel.sent[0]["instance"]["options"] == {"storageBucket": "web1"}

    def test_start_unknown_app(self, client):
        response = client.post(
            "/instances",
            json={"name": "web1", "appName": "nginx", "appVersion": "9"},
        )

        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["error"] == "NOT_FOUND"
        assert detail["details"]["recovery_action"] == "abort"

    def test_start_duplicate(self, client):
        body = {"name": "web1", "appName": "nginx", "appVersion": "1.0"}
        client.post("/instances", json=body)

        response = client.post("/instances", json=body)

        assert response.status_code == 409

    def test_start_request_validation(self, client):
        response = client.post("/instances", json={"name": "", "appName": "nginx"})
        assert response.status_code == 422

    def test_stop_instance(self, client, channel):
        client.post(
            "/instances", json={"name": "web1", "appName": "nginx", "appVersion": "1.0"}
        )

        response = client.post("/instances/web1/stop", json={"stoppedBy": "ops"})

        assert response.status_code == 200
        assert response.json()["desiredState"] == "stopped"
        assert response.json()["stoppedBy"] == "ops"
        assert channel.of_kind("stop")[0]["instance"] == {"name": "web1"}

    def test_stop_without_body(self, client):
        client.post(
            "/instances", json={"name": "web1", "appName": "nginx", "appVersion": "1.0"}
        )
        assert client.post("/instances/web1/stop").status_code == 200

    def test_stop_unknown_instance(self, client, channel):
        response = client.post("/instances/ghost/stop")

        assert response.status_code == 404
        assert channel.sent == []

    def test_filters(self, client):
        client.post(
            "/instances", json={"name": "web1", "appName": "nginx", "appVersion": "1.0"}
        )
        client.post("/agent/snapshot", json={"web2": {"state": "running"}})

        running = client.get("/instances", params={"state": "running"}).json()
        created = client.get("/instances", params={"state": "created"}).json()

        assert [i["name"] for i in running] == ["web2"]
        assert [i["name"] for i in created] == ["web1"]
        assert len(client.get("/instances").json()) == 2


class TestDispatchFailure:
    """Test the response when the agent cannot be reached."""

    def test_record_kept_and_reported(self, store):
        adapter = WebAdapter(store, channel=BrokenChannel())
        with TestClient(adapter.app) as client:
            client.put("/apps", json=NGINX)

            response = client.post(
                "/instances",
                json={"name": "web1", "appName": "nginx", "appVersion": "1.0"},
            )

            assert response.status_code == 502
            detail = response.json()["detail"]
            assert detail["error"] == "DISPATCH_FAILED"
            assert detail["details"]["command"] == "start"
            assert detail["details"]["persisted"] is True
            assert detail["details"]["recovery_action"] == "await_reconciliation"
            assert [i["name"] for i in client.get("/instances").json()] == ["web1"]


class TestSnapshotEndpoint:
    """Test agent snapshot submission."""

    def test_reconciles_snapshot(self, client):
        client.post(
            "/instances", json={"name": "web1", "appName": "nginx", "appVersion": "1.0"}
        )

        response = client.post(
            "/agent/snapshot",
            json={"web1": {"state": "running", "services": {"http": {"port": 80}}}},
        )

        assert response.status_code == 200
        result = response.json()
        assert result["upserted"] == ["web1"]
        assert result["removed"] == 0
        assert result["published"] is True

        [web1] = client.get("/instances").json()
        assert web1["state"] == "running"
        assert web1["desiredState"] == "running"
        assert web1["services"]["http"]["port"] == 80

    def test_stamps_increase(self, client):
        first = client.post("/agent/snapshot", json={}).json()["stamp"]
        second = client.post("/agent/snapshot", json={}).json()["stamp"]
        assert second > first

    def test_camel_case_fields_are_accepted(self, client):
        client.post(
            "/agent/snapshot",
            json={"manual": {"state": "running", "storageBucket": "manual-data"}},
        )

        [manual] = client.get("/instances", params={"name": "manual"}).json()
        assert manual["storageBucket"] == "manual-data"

    def test_stale_instances_removed(self, client):
        client.post("/agent/snapshot", json={"a": {"state": "running"}})

        result = client.post("/agent/snapshot", json={"b": {"state": "running"}}).json()

        assert result["removed"] == 1
        assert [i["name"] for i in client.get("/instances").json()] == ["b"]

    def test_malformed_snapshot(self, client):
        response = client.post("/agent/snapshot", json={"  ": {}})

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "INVALID_SNAPSHOT"


class TestServiceEndpoints:
    """Test service listing and log tailing."""

    def test_services(self, client):
        client.post(
            "/agent/snapshot",
            json={"blog": {"state": "running", "services": {"www": {}, "db": {}}}},
        )

        services = client.get("/instances/blog/services").json()
        assert {s["name"] for s in services} == {"www", "db"}
        only_db = client.get("/instances/blog/services", params={"service": "db"})
        assert only_db.json() == [{"name": "db"}]

    def test_services_of_unknown_instance(self, client):
        assert client.get("/instances/ghost/services").status_code == 404

    def test_logs(self, client):
        client.post(
            "/agent/snapshot",
            json={"blog": {"state": "running", "services": {"www": {"logs": {}}}}},
        )

        assert client.get("/instances/blog/services/www/logs").json() == []
        missing = client.get("/instances/blog/services/cache/logs")
        assert missing.status_code == 404


class TestBucketEndpoints:
    """Test bucket operations."""

    def test_delete_and_copy(self, client, store, channel):
        client.portal.call(store.buckets.insert, {"name": "data", "is_locked": False})

        copied = client.post("/buckets/data/copy", json={"destination": "backup"})
        deleted = client.delete("/buckets/data")

        assert copied.status_code == 202
        assert copied.json() == {"name": "backup", "isLocked": True}
        assert deleted.status_code == 202
        assert {b["name"]: b["isLocked"] for b in client.get("/buckets").json()} == {
            "data": True,
            "backup": True,
        }
        assert [c["kind"] for c in channel.sent] == ["copyBucket", "deleteBucket"]

    def test_unknown_bucket(self, client):
        assert client.delete("/buckets/ghost").status_code == 404
        response = client.post("/buckets/ghost/copy", json={"destination": "x"})
        assert response.status_code == 404

    def test_copy_onto_existing(self, client, store):
        client.portal.call(store.buckets.insert, {"name": "a", "is_locked": False})
        client.portal.call(store.buckets.insert, {"name": "b", "is_locked": False})

        response = client.post("/buckets/a/copy", json={"destination": "b"})

        assert response.status_code == 409
        assert client.get("/buckets").json() == [
            {"name": "a", "isLocked": False},
            {"name": "b", "isLocked": False},
        ]


class TestListingEndpoints:
    """Test the resource and datastore listings."""

    def test_empty(self, client):
        assert client.get("/resources").json() == []
        assert client.get("/datastores").json() == []

    def test_lists_records(self, client, store):
        client.portal.call(store.resources.insert, {"name": "tunnels"})
        client.portal.call(
            store.datastores.insert, {"name": "local", "root_path": "/data"}
        )

        assert client.get("/resources").json() == [{"name": "tunnels"}]
        assert client.get("/datastores").json() == [
            {"name": "local", "root_path": "/data"}
        ]


class TestAppStoreEndpoint:
    """Test the app store passthrough."""

    def test_not_configured(self, client):
        assert client.get("/appstore").status_code == 404

    def test_lists_templates(self, store):
        manifest = "- name: redis\n  version: '7'\n  image: redis\n"
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text=manifest))
        )
        adapter = WebAdapter(
            store, appstore=AppStoreClient("http://store/apps.yml", client=http)
        )

        with TestClient(adapter.app) as client:
            templates = client.get("/appstore").json()

        assert templates == [
            {
                "name": "redis",
                "version": "7",
                "dockerCompose": "",
                "bigboatCompose": "",
                "image": "redis",
            }
        ]

    def test_unavailable(self, store):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        adapter = WebAdapter(
            store, appstore=AppStoreClient("http://store/apps.yml", client=http)
        )

        with TestClient(adapter.app) as client:
            response = client.get("/appstore")

        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "APPSTORE_UNAVAILABLE"


class TestSubscriptions:
    """Test WebSocket snapshot streaming."""

    def test_receives_published_snapshots(self, client):
        with client.websocket_connect("/subscriptions/instances") as websocket:
            client.post("/agent/snapshot", json={"web1": {"state": "running"}})

            snapshot = websocket.receive_json()

        assert [i["name"] for i in snapshot] == ["web1"]
        assert snapshot[0]["state"] == "running"

    def test_replays_latest_snapshot(self, client):
        with client.websocket_connect("/subscriptions/apps") as websocket:
            apps = websocket.receive_json()

        assert [a["name"] for a in apps] == ["nginx"]

    def test_unknown_topic(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/subscriptions/users"):
                pass

        assert exc_info.value.code == 4004

    def test_disconnect_unsubscribes(self, client, adapter):
        with client.websocket_connect("/subscriptions/buckets"):
            pass

        client.get("/live")
        assert adapter.bus.subscriber_count("buckets") == 0


class TestHealthEndpoints:
    """Test health endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["store"]["healthy"] is True
        assert body["checks"]["scheduler"]["healthy"] is True
        assert body["environment"] == "development"

    def test_ready_and_live(self, client):
        assert client.get("/ready").json()["status"] == "ready"
        assert client.get("/live").json()["status"] == "alive"


class TestCreateWebAdapter:
    """Test building an adapter from configuration."""

    def test_from_config(self):
        config = Config(
            environment="testing",
            database={"url": "memory://"},
            bus={"max_pending": 2},
        )

        adapter = create_web_adapter(config)

        assert isinstance(adapter.store, InMemoryRecordStore)
        assert isinstance(adapter.channel, InMemoryCommandChannel)
        assert adapter.bus.max_pending == 2
        with TestClient(adapter.app) as client:
            assert client.get("/live").status_code == 200
