"""Read side of the dashboard: record listings, services, logs and app store."""

from typing import Any

import httpx

from bigboat.agent.logs import DEFAULT_TAIL, fetch_service_logs
from bigboat.catalog import AppStoreClient
from bigboat.schemas.models import (
    App,
    AppTemplate,
    Bucket,
    DataStore,
    Instance,
    Resource,
)
from bigboat.storage import (
    APPS,
    BUCKETS,
    DATASTORES,
    INSTANCES,
    RESOURCES,
    Filter,
    RecordStore,
    store_guard,
)
from bigboat.utils.errors import InstanceNotFoundError
from bigboat.utils.telemetry import get_logger


class QueryService:
    """Queries over the record store and the remote endpoints the agent reports.

    Args:
        store: Record store
        appstore: App store client; ``appstore_apps`` needs one
        http_client: Client used to tail service logs
    """

    def __init__(
        self,
        store: RecordStore,
        appstore: AppStoreClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.store = store
        self.appstore = appstore
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._owns_http = http_client is None
        self._logger = get_logger("bigboat.queries")

    async def apps(self) -> list[App]:
        async with store_guard("find", APPS):
            docs = await self.store.apps.find()
        return [App.model_validate(doc) for doc in docs]

    async def instances(self, **filters: Any) -> list[Instance]:
        """Instances whose fields equal the given values, all when none given.

        Example:
            >>> await queries.instances(state="running")  # doctest: +SKIP
        """
        async with store_guard("find", INSTANCES):
            docs = await self.store.instances.find(Filter.where(**filters))
        return [Instance.model_validate(doc) for doc in docs]

    async def instance(self, name: str) -> Instance:
        async with store_guard("find", INSTANCES):
            doc = await self.store.instances.find_one(Filter.where(name=name))
        if doc is None:
            raise InstanceNotFoundError(name)
        return Instance.model_validate(doc)

    async def buckets(self) -> list[Bucket]:
        async with store_guard("find", BUCKETS):
            docs = await self.store.buckets.find()
        return [Bucket.model_validate(doc) for doc in docs]

    async def resources(self) -> list[Resource]:
        async with store_guard("find", RESOURCES):
            docs = await self.store.resources.find()
        return [Resource.model_validate(doc) for doc in docs]

    async def datastores(self) -> list[DataStore]:
        async with store_guard("find", DATASTORES):
            docs = await self.store.datastores.find()
        return [DataStore.model_validate(doc) for doc in docs]

    async def services(
        self, instance: str | Instance, name: str | None = None
    ) -> list[dict[str, Any]]:
        """Services of an instance, each with its name merged into its info.

        Raises:
            InstanceNotFoundError: If ``instance`` is a name that does not exist
        """
        if isinstance(instance, str):
            instance = await self.instance(instance)
        return instance.service_list(name)

    async def service_logs(
        self, service_info: dict[str, Any], tail: str = DEFAULT_TAIL
    ) -> list[str]:
        """Last log lines of a service, fetched from the URL the agent reported."""
        lines = await fetch_service_logs(self._http, service_info, tail)
        self._logger.debug(
            "Service logs fetched", service=service_info.get("name"), lines=len(lines)
        )
        return lines

    async def appstore_apps(self) -> list[AppTemplate]:
        """Templates of the remote app store.

        Raises:
            CatalogError: If the manifest cannot be fetched or parsed
        """
        if self.appstore is None:
            raise RuntimeError("QueryService has no app store client")
        return await self.appstore.fetch()

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()
