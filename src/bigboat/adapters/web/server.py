"""FastAPI-based web adapter for the dashboard.

This module exposes the queries and lifecycle operations over REST, accepts
agent snapshots for reconciliation and streams bus snapshots to WebSocket
subscribers, one socket per topic.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import (
    Body,
    FastAPI,
    HTTPException,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bigboat import __version__
from bigboat.agent import AgentCommandChannel, HttpCommandChannel, InMemoryCommandChannel
from bigboat.bus import InMemoryNotificationBus, Topic
from bigboat.catalog import AppStoreClient
from bigboat.config import Config, HealthChecker, HealthCheckConfig
from bigboat.core import (
    LifecycleController,
    QueryService,
    ReconciliationScheduler,
    Reconciler,
)
from bigboat.core.compose import normalize_options
from bigboat.schemas.models import App, AppDescriptor
from bigboat.storage import RecordStore, open_store
from bigboat.utils.errors import (
    CatalogError,
    ComposeError,
    ConflictError,
    DashboardError,
    DispatchFailureError,
    NotFoundError,
    StoreFailureError,
)
from bigboat.utils.stamps import StampSource
from bigboat.utils.telemetry import get_logger

from .health import create_health_router


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartInstanceRequest(_Request):
    """Request model for starting an instance."""

    name: str = Field(..., min_length=1, description="Unique instance name")
    app_name: str = Field(..., min_length=1, description="App to deploy")
    app_version: str = Field(..., min_length=1, description="App version")
    options: dict[str, Any] | None = Field(
        default=None, description="Start options, storage bucket by default"
    )
    started_by: str | None = Field(default=None, description="Requesting user")


class StopInstanceRequest(_Request):
    """Request model for stopping an instance."""

    stopped_by: str | None = Field(default=None, description="Requesting user")


class CopyBucketRequest(_Request):
    """Request model for copying a bucket."""

    destination: str = Field(..., min_length=1, description="New bucket name")


class ReconciliationResponse(_Request):
    """Outcome of the reconciliation pass covering a submitted snapshot."""

    stamp: int
    upserted: list[str]
    removed: int
    published: bool


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict[str, Any] | None = Field(
        default=None, description="Additional details"
    )


# Most specific first
_ERROR_STATUS: list[tuple[type[DashboardError], int, str]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (ConflictError, status.HTTP_409_CONFLICT, "CONFLICT"),
    (ComposeError, status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_COMPOSE"),
    (DispatchFailureError, status.HTTP_502_BAD_GATEWAY, "DISPATCH_FAILED"),
    (CatalogError, status.HTTP_502_BAD_GATEWAY, "APPSTORE_UNAVAILABLE"),
    (StoreFailureError, status.HTTP_503_SERVICE_UNAVAILABLE, "STORE_UNAVAILABLE"),
]


def http_error(error: DashboardError) -> HTTPException:
    """Translate a dashboard error into an HTTP error with an ErrorResponse body."""
    for error_type, status_code, code in _ERROR_STATUS:
        if isinstance(error, error_type):
            break
    else:
        status_code, code = status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"

    details: dict[str, Any] = {"recovery_action": error.recovery_action.value}
    if isinstance(error, DispatchFailureError):
        details["command"] = error.command
        details["persisted"] = error.record is not None

    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error=code, message=str(error), details=details).model_dump(),
    )


class WebAdapter:
    """FastAPI application wired to one control plane.

    Args:
        store: Record store; initialized and closed with the app lifespan
        bus: Bus whose topics are streamed to WebSocket subscribers
        channel: Agent command channel
        appstore: App store client behind ``GET /appstore``
        stamps: Stamp source for reconciliation passes
        health_config: Health check thresholds
        allowed_origins: CORS origins
        environment: Environment reported by ``/health``
    """

    def __init__(
        self,
        store: RecordStore,
        bus: InMemoryNotificationBus | None = None,
        channel: AgentCommandChannel | None = None,
        appstore: AppStoreClient | None = None,
        stamps: StampSource | None = None,
        health_config: HealthCheckConfig | None = None,
        allowed_origins: list[str] | None = None,
        environment: str = "development",
    ):
        self.store = store
        self.bus = bus or InMemoryNotificationBus()
        self.channel = channel or InMemoryCommandChannel()
        self.appstore = appstore
        self.reconciler = Reconciler(store, self.bus, stamps)
        self.scheduler = ReconciliationScheduler(self.reconciler)
        self.lifecycle = LifecycleController(store, self.bus, self.channel)
        self.queries = QueryService(store, appstore)
        self.health_checker = HealthChecker(
            health_config or HealthCheckConfig(), store, self.scheduler
        )
        self.logger = get_logger("bigboat.web_adapter")

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            await self.store.initialize()
            await self.scheduler.start()
            self.logger.info("Web adapter started")
            yield
            await self.shutdown()
            self.logger.info("Web adapter stopped")

        self.app = FastAPI(
            title="BigBoat Dashboard API",
            description="REST and WebSocket API for the container dashboard control plane",
            version=__version__,
            lifespan=lifespan,
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self.app.include_router(create_health_router(self.health_checker, environment))
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up API routes."""
        errors: dict[int | str, dict[str, Any]] = {
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
            502: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        }

        @self.app.get("/apps")
        async def list_apps() -> list[dict[str, Any]]:
            try:
                return [app.to_public() for app in await self.queries.apps()]
            except DashboardError as e:
                raise http_error(e) from e

        @self.app.put("/apps", responses=errors)
        async def put_app(app: AppDescriptor) -> dict[str, Any]:
            """Create or replace an app definition."""
            try:
                stored = await self.lifecycle.create_or_update_app(
                    App.model_validate(app.model_dump())
                )
            except DashboardError as e:
                raise http_error(e) from e
            return stored.to_public()

        @self.app.delete("/apps/{name}/{version}", responses=errors)
        async def delete_app(name: str, version: str) -> dict[str, Any]:
            try:
                removed = await self.lifecycle.remove_app(name, version)
            except DashboardError as e:
                raise http_error(e) from e
            return {"removed": removed}

        @self.app.get("/instances")
        async def list_instances(
            name: str | None = None,
            state: str | None = None,
            desired_state: str | None = None,
        ) -> list[dict[str, Any]]:
            """List instances, optionally filtered by name, state or desired state."""
            filters = {
                k: v
                for k, v in (
                    ("name", name),
                    ("state", state),
                    ("desired_state", desired_state),
                )
                if v is not None
            }
            try:
                instances = await self.queries.instances(**filters)
            except DashboardError as e:
                raise http_error(e) from e
            return [instance.to_public() for instance in instances]

        @self.app.post(
            "/instances", status_code=status.HTTP_201_CREATED, responses=errors
        )
        async def start_instance(request: StartInstanceRequest) -> dict[str, Any]:
            """Start an instance; it stays ``created`` until the agent reports it."""
            try:
                instance = await self.lifecycle.start_instance(
                    request.name,
                    request.app_name,
                    request.app_version,
                    request.options,
                    request.started_by,
                )
            except DashboardError as e:
                raise http_error(e) from e
            return instance.to_public()

        @self.app.post("/instances/{name}/stop", responses=errors)
        async def stop_instance(
            name: str, request: StopInstanceRequest | None = Body(default=None)
        ) -> dict[str, Any]:
            stopped_by = request.stopped_by if request else None
            try:
                instance = await self.lifecycle.stop_instance(name, stopped_by)
            except DashboardError as e:
                raise http_error(e) from e
            return instance.to_public()

        @self.app.get("/instances/{name}/services", responses=errors)
        async def list_services(
            name: str, service: str | None = None
        ) -> list[dict[str, Any]]:
            try:
                return await self.queries.services(name, service)
            except DashboardError as e:
                raise http_error(e) from e

        @self.app.get("/instances/{name}/services/{service}/logs", responses=errors)
        async def service_logs(name: str, service: str) -> list[str]:
            """Tail the logs of one service of an instance."""
            try:
                services = await self.queries.services(name, service)
            except DashboardError as e:
                raise http_error(e) from e
            if not services:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=ErrorResponse(
                        error="NOT_FOUND",
                        message=f"Service {service} of instance {name} does not exist",
                    ).model_dump(),
                )
            try:
                return await self.queries.service_logs(services[0])
            except Exception as e:
                self.logger.warning(
                    "Service log fetch failed",
                    instance=name,
                    service=service,
                    error=str(e),
                )
                raise HTTPException(
                    status_code=status.HTTP_502_BAD_GATEWAY,
                    detail=ErrorResponse(
                        error="LOGS_UNAVAILABLE", message=str(e)
                    ).model_dump(),
                ) from e

        @self.app.get("/buckets")
        async def list_buckets() -> list[dict[str, Any]]:
            try:
                return [bucket.to_public() for bucket in await self.queries.buckets()]
            except DashboardError as e:
                raise http_error(e) from e

        @self.app.get("/resources")
        async def list_resources() -> list[dict[str, Any]]:
            try:
                return [r.to_public() for r in await self.queries.resources()]
            except DashboardError as e:
                raise http_error(e) from e

        @self.app.get("/datastores")
        async def list_datastores() -> list[dict[str, Any]]:
            try:
                return [ds.to_public() for ds in await self.queries.datastores()]
            except DashboardError as e:
                raise http_error(e) from e

        @self.app.delete(
            "/buckets/{name}", status_code=status.HTTP_202_ACCEPTED, responses=errors
        )
        async def delete_bucket(name: str) -> dict[str, Any]:
            """Lock a bucket and ask the agent to delete it."""
            try:
                bucket = await self.lifecycle.delete_bucket(name)
            except DashboardError as e:
                raise http_error(e) from e
            return bucket.to_public()

        @self.app.post(
            "/buckets/{name}/copy",
            status_code=status.HTTP_202_ACCEPTED,
            responses=errors,
        )
        async def copy_bucket(name: str, request: CopyBucketRequest) -> dict[str, Any]:
            try:
                bucket = await self.lifecycle.copy_bucket(name, request.destination)
            except DashboardError as e:
                raise http_error(e) from e
            return bucket.to_public()

        @self.app.get("/appstore", responses=errors)
        async def appstore_apps() -> list[dict[str, Any]]:
            if self.appstore is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=ErrorResponse(
                        error="NOT_FOUND", message="No app store configured"
                    ).model_dump(),
                )
            try:
                templates = await self.queries.appstore_apps()
            except DashboardError as e:
                raise http_error(e) from e
            return [template.to_public() for template in templates]

        @self.app.post(
            "/agent/snapshot",
            response_model=ReconciliationResponse,
            responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        )
        async def submit_snapshot(
            snapshot: dict[str, dict[str, Any]],
        ) -> ReconciliationResponse:
            """Reconcile a full snapshot of the instances the agent sees."""
            normalized = {
                name: normalize_options(fields) for name, fields in snapshot.items()
            }
            try:
                result = await self.scheduler.submit(normalized)
            except ValueError as e:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=ErrorResponse(
                        error="INVALID_SNAPSHOT", message=str(e)
                    ).model_dump(),
                ) from e
            except DashboardError as e:
                raise http_error(e) from e

            return ReconciliationResponse(
                stamp=result.stamp,
                upserted=result.upserted,
                removed=result.removed,
                published=result.published,
            )

        @self.app.websocket("/subscriptions/{topic}")
        async def subscribe(websocket: WebSocket, topic: str) -> None:
            """Stream full snapshots of a topic, starting with the latest one."""
            try:
                bus_topic = Topic(topic)
            except ValueError:
                await websocket.close(code=4004, reason=f"Unknown topic: {topic}")
                return

            await websocket.accept()
            subscription = self.bus.subscribe(bus_topic)
            self.logger.info("Subscriber connected", topic=topic)

            async def forward() -> None:
                async for snapshot in subscription:
                    await websocket.send_json(snapshot)

            async def watch() -> None:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        return

            tasks = {asyncio.create_task(forward()), asyncio.create_task(watch())}
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    task.result()
            except WebSocketDisconnect:
                pass
            finally:
                for task in tasks:
                    task.cancel()
                self.bus.unsubscribe(subscription)
                self.logger.info(
                    "Subscriber disconnected",
                    topic=topic,
                    dropped=subscription.dropped,
                )

    async def shutdown(self) -> None:
        """Stop reconciling and release every resource the adapter holds."""
        await self.scheduler.stop()
        await self.bus.close()
        await self.queries.close()
        await self.channel.close()
        if self.appstore is not None:
            await self.appstore.close()
        await self.store.close()
        self.logger.info("Web adapter shutdown complete")


def create_web_adapter(config: Config) -> WebAdapter:
    """Create a web adapter with the backends named in the configuration.

    Args:
        config: Loaded configuration

    Returns:
        WebAdapter instance
    """
    channel: AgentCommandChannel
    if config.agent.url:
        channel = HttpCommandChannel(config.agent.url, config.agent.timeout_seconds)
    else:
        channel = InMemoryCommandChannel()

    return WebAdapter(
        store=open_store(config.database.url),
        bus=InMemoryNotificationBus(config.bus.max_pending),
        channel=channel,
        appstore=AppStoreClient(config.appstore.url, config.appstore.timeout_seconds),
        allowed_origins=config.web.allowed_origins,
        environment=config.environment,
    )
