"""Unit tests for the query service."""

import httpx
import pytest

from bigboat.catalog import AppStoreClient
from bigboat.core.queries import QueryService
from bigboat.storage import InMemoryRecordStore
from bigboat.utils.errors import CatalogError, InstanceNotFoundError

HEADER = "\x01\x00\x00\x00\x00\x00\x00\x05"


def log_server(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/logs/www/10":
        return httpx.Response(200, text=f"{HEADER}booting\n{HEADER}ready")
    return httpx.Response(500)


@pytest.fixture
async def store():
    store = InMemoryRecordStore()
    await store.instances.insert(
        {
            "name": "blog",
            "state": "running",
            "services": {
                "www": {
                    "state": "running",
                    "logs": {"10": "http://agent/logs/www/10"},
                },
                "mysql": {"state": "running", "logs": {"10": "http://agent/broken"}},
            },
        }
    )
    await store.instances.insert({"name": "idle", "state": "stopped"})
    await store.buckets.insert({"name": "blog", "is_locked": False})
    await store.apps.insert({"name": "wordpress", "version": "4.7"})
    await store.resources.insert({"name": "tunnels", "kind": "network"})
    await store.datastores.insert({"name": "local", "path": "/local/data"})
    return store


@pytest.fixture
async def queries(store):
    client = httpx.AsyncClient(transport=httpx.MockTransport(log_server))
    service = QueryService(store, http_client=client)
    yield service
    await client.aclose()


class TestRecordQueries:
    """Test listing records."""

    @pytest.mark.asyncio
    async def test_listings(self, queries):
        assert [a.name for a in await queries.apps()] == ["wordpress"]
        assert [b.name for b in await queries.buckets()] == ["blog"]
        assert {i.name for i in await queries.instances()} == {"blog", "idle"}

    @pytest.mark.asyncio
    async def test_resources_and_datastores(self, queries):
        [resource] = await queries.resources()
        [datastore] = await queries.datastores()

        assert resource.to_public() == {"name": "tunnels", "kind": "network"}
        assert datastore.name == "local"
        assert datastore.to_public()["path"] == "/local/data"

    @pytest.mark.asyncio
    async def test_instances_filtered_by_field(self, queries):
        running = await queries.instances(state="running")
        assert [i.name for i in running] == ["blog"]

    @pytest.mark.asyncio
    async def test_missing_instance(self, queries):
        with pytest.raises(InstanceNotFoundError):
            await queries.instance("nope")

    @pytest.mark.asyncio
    async def test_services_merge_name(self, queries):
        services = await queries.services("blog")
        assert {s["name"] for s in services} == {"www", "mysql"}

        [www] = await queries.services("blog", "www")
        assert www["state"] == "running"
        assert await queries.services("idle") == []


class TestServiceLogs:
    """Test tailing service logs through the agent-reported URLs."""

    @pytest.mark.asyncio
    async def test_strips_stream_header(self, queries):
        [www] = await queries.services("blog", "www")
        assert await queries.service_logs(www, tail="10") == ["booting", "ready"]

    @pytest.mark.asyncio
    async def test_unknown_tail_is_empty(self, queries):
        [www] = await queries.services("blog", "www")
        assert await queries.service_logs(www, tail="500") == []

    @pytest.mark.asyncio
    async def test_endpoint_failure_raises(self, queries):
        [mysql] = await queries.services("blog", "mysql")
        with pytest.raises(httpx.HTTPStatusError):
            await queries.service_logs(mysql, tail="10")


class TestAppStore:
    """Test the app store passthrough."""

    @pytest.mark.asyncio
    async def test_without_client(self, queries):
        with pytest.raises(RuntimeError):
            await queries.appstore_apps()

    @pytest.mark.asyncio
    async def test_fetches_templates(self, store):
        manifest = "- name: nginx\n  version: '1.0'\n  image: nginx\n"
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=manifest))
        client = httpx.AsyncClient(transport=transport)
        queries = QueryService(
            store, appstore=AppStoreClient("http://store/apps.yml", client=client)
        )

        [template] = await queries.appstore_apps()

        assert template.name == "nginx"
        assert template.image == "nginx"
        await queries.close()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_fetch_failure(self, store):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        client = httpx.AsyncClient(transport=transport)
        queries = QueryService(
            store, appstore=AppStoreClient("http://store/apps.yml", client=client)
        )

        with pytest.raises(CatalogError):
            await queries.appstore_apps()
        await queries.close()
        await client.aclose()
