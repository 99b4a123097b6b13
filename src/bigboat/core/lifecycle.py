"""Lifecycle controller: operations that change desired state.

Every operation follows the same mark-then-dispatch pattern: persist the
intent in the store first, then hand the command to the agent. The agent's
effect becomes visible only through a later reconciliation pass; apart from
the initial ``created`` state the controller never writes observed fields.

When a dispatch fails, the persisted intent is kept and the failure is
raised after subscribers have been notified of the mutation.
"""

from typing import Any

from bigboat.agent import AgentCommandChannel
from bigboat.bus import NotificationBus, Topic, publish_best_effort
from bigboat.core.compose import (
    derive_tags,
    effective_options,
    enhance_compose,
    wire_options,
)
from bigboat.schemas.models import (
    App,
    Bucket,
    DesiredState,
    Instance,
    InstanceState,
)
from bigboat.schemas.types import (
    AgentCommand,
    CopyBucketCommand,
    DeleteBucketCommand,
    StartCommand,
    StopCommand,
)
from bigboat.storage import APPS, BUCKETS, INSTANCES, Filter, RecordStore, store_guard
from bigboat.utils.errors import (
    AppNotFoundError,
    BucketExistsError,
    BucketNotFoundError,
    DispatchFailureError,
    DuplicateRecordError,
    InstanceExistsError,
    InstanceNotFoundError,
    StoreFailureError,
)
from bigboat.utils.telemetry import (
    async_performance_timer,
    get_logger,
    record_notification,
)

START_STATUS = "Request sent to agent"
STOP_STATUS = "Instance stop is requested"


class LifecycleController:
    """Applies user intent to the store and forwards it to the agent.

    Args:
        store: Record store
        bus: Bus receiving full snapshots after each mutation
        channel: Command channel to the agent
    """

    def __init__(
        self,
        store: RecordStore,
        bus: NotificationBus,
        channel: AgentCommandChannel,
    ) -> None:
        self.store = store
        self.bus = bus
        self.channel = channel
        self._logger = get_logger("bigboat.lifecycle")

    async def start_instance(
        self,
        name: str,
        app_name: str,
        app_version: str,
        options: dict[str, Any] | None = None,
        started_by: str | None = None,
    ) -> Instance:
        """Create an instance of an app and ask the agent to deploy it.

        The returned record is in the ``created`` state; its observed state
        is authoritative only after the next reconciliation pass.

        Raises:
            AppNotFoundError: If no app matches (app_name, app_version)
            InstanceExistsError: If an instance with this name exists
            ComposeError: If the app's compose definition is invalid
            StoreFailureError: If the store rejects the insert
            DispatchFailureError: If the start command could not be sent; the
                instance record is kept
        """
        async with async_performance_timer(
            "start_instance", instance=name, logger=self._logger
        ):
            async with store_guard("find", APPS):
                app_doc = await self.store.apps.find_one(
                    Filter.where(name=app_name, version=app_version)
                )
            if app_doc is None:
                raise AppNotFoundError(app_name, app_version)

            opts = effective_options(name, options)
            descriptor = enhance_compose(name, opts, App.model_validate(app_doc))

            instance = Instance(
                name=name,
                state=InstanceState.CREATED,
                desired_state=DesiredState.RUNNING,
                status=START_STATUS,
                storage_bucket=opts.get("storage_bucket"),
                app=descriptor,
                services={},
                started_by=started_by,
            )
            try:
                async with store_guard("insert", INSTANCES):
                    record = await self.store.instances.insert(instance.to_record())
            except DuplicateRecordError as e:
                raise InstanceExistsError(name) from e

            command: StartCommand = {
                "kind": "start",
                "app": descriptor.to_public(),  # type: ignore[typeddict-item]
                "instance": {"name": name, "options": wire_options(opts)},
            }
            await self._dispatch_then_publish(command, Topic.INSTANCES, record)

        return Instance.model_validate(record)

    async def stop_instance(self, name: str, stopped_by: str | None = None) -> Instance:
        """Record the intent to stop an instance and ask the agent to stop it.

        Observed state is untouched; it changes with a later reconciliation.

        Raises:
            InstanceNotFoundError: If no instance has this name (no side effects)
            StoreFailureError: If the store rejects the update
            DispatchFailureError: If the stop command could not be sent; the
                intent stays recorded
        """
        async with async_performance_timer(
            "stop_instance", instance=name, logger=self._logger
        ):
            async with store_guard("update", INSTANCES):
                record = await self.store.instances.update(
                    Filter.where(name=name),
                    {
                        "desired_state": DesiredState.STOPPED.value,
                        "status": STOP_STATUS,
                        "stopped_by": stopped_by,
                    },
                )
            if record is None:
                raise InstanceNotFoundError(name)

            app = record.get("app") or {}
            command: StopCommand = {
                "kind": "stop",
                "app": {"name": app.get("name", ""), "version": app.get("version", "")},
                "instance": {"name": name},
            }
            await self._dispatch_then_publish(command, Topic.INSTANCES, record)

        return Instance.model_validate(record)

    async def delete_bucket(self, name: str) -> Bucket:
        """Lock a bucket and ask the agent to delete its data.

        The record itself stays; removing it is up to whoever completes the
        deletion.

        Raises:
            BucketNotFoundError: If the bucket does not exist (nothing sent)
            DispatchFailureError: If the delete command could not be sent
        """
        async with async_performance_timer("delete_bucket", logger=self._logger):
            async with store_guard("update", BUCKETS):
                record = await self.store.buckets.update(
                    Filter.where(name=name), {"is_locked": True}
                )
            if record is None:
                raise BucketNotFoundError(name)

            await self._publish(Topic.BUCKETS)
            command: DeleteBucketCommand = {"kind": "deleteBucket", "name": name}
            await self._send(command, record)

        return Bucket.model_validate(record)

    async def copy_bucket(self, source: str, destination: str) -> Bucket:
        """Lock a bucket, create its locked copy target and ask the agent to copy.

        Both buckets are locked before the command leaves, so nothing mutates
        them while the copy runs.

        Raises:
            BucketNotFoundError: If the source bucket does not exist
            BucketExistsError: If the destination bucket already exists
            DispatchFailureError: If the copy command could not be sent
        """
        async with async_performance_timer("copy_bucket", logger=self._logger):
            async with store_guard("find", BUCKETS):
                original = await self.store.buckets.find_one(Filter.where(name=source))
                existing = await self.store.buckets.find_one(
                    Filter.where(name=destination)
                )
            if original is None:
                raise BucketNotFoundError(source)
            if existing is not None:
                raise BucketExistsError(destination)

            async with store_guard("update", BUCKETS):
                locked = await self.store.buckets.update(
                    Filter.where(name=source), {"is_locked": True}
                )
            if locked is None:
                raise BucketNotFoundError(source)

            try:
                async with store_guard("insert", BUCKETS):
                    record = await self.store.buckets.insert(
                        Bucket(name=destination, is_locked=True).to_record()
                    )
            except DuplicateRecordError as e:
                # Destination created concurrently; release the source again.
                async with store_guard("update", BUCKETS):
                    await self.store.buckets.update(
                        Filter.where(name=source),
                        {"is_locked": bool(original.get("is_locked", False))},
                    )
                raise BucketExistsError(destination) from e

            command: CopyBucketCommand = {
                "kind": "copyBucket",
                "source": source,
                "destination": destination,
            }
            await self._publish(Topic.BUCKETS)
            await self._send(command, record)

        return Bucket.model_validate(record)

    async def create_or_update_app(self, app: App) -> App:
        """Store an app definition, deriving its tags from the bigboat compose.

        Raises:
            ComposeError: If the bigboat compose is not valid YAML
        """
        tags = derive_tags(app.bigboat_compose, app.name)
        record = {**app.to_record(), "tags": tags}
        async with store_guard("upsert", APPS):
            stored = await self.store.apps.upsert(
                Filter.where(name=app.name, version=app.version), record
            )
        await self._publish(Topic.APPS)
        self._logger.info("App stored", app=app.name, version=app.version, tags=tags)
        return App.model_validate(stored)

    async def remove_app(self, name: str, version: str) -> int:
        """Remove an app definition; instances already started keep their copy."""
        async with store_guard("remove", APPS):
            removed = await self.store.apps.remove(
                Filter.where(name=name, version=version)
            )
        await self._publish(Topic.APPS)
        self._logger.info("App removed", app=name, version=version, removed=removed)
        return removed

    async def _dispatch_then_publish(
        self, command: AgentCommand, topic: Topic, record: dict[str, Any]
    ) -> None:
        try:
            await self._send(command, record)
        finally:
            await self._publish(topic)

    async def _send(self, command: AgentCommand, record: dict[str, Any]) -> None:
        try:
            await self.channel.send(command)
        except DispatchFailureError as e:
            self._logger.error(
                "Command lost, store mutation kept",
                command=command["kind"],
                error=str(e),
            )
            raise DispatchFailureError(command["kind"], e.cause, record) from e

    async def _publish(self, topic: Topic) -> bool:
        """Publish the full collection behind ``topic``.

        A failed re-read counts as a failed publish: the mutation that
        triggered it is already stored and must not be reported as failed.
        """
        collection = {
            Topic.INSTANCES: (INSTANCES, Instance),
            Topic.BUCKETS: (BUCKETS, Bucket),
            Topic.APPS: (APPS, App),
        }[topic]
        name, model = collection
        try:
            async with store_guard("find", name):
                docs = await self.store.collection(name).find()
        except StoreFailureError as e:
            record_notification(topic.value, "error")
            self._logger.warning(
                "Snapshot re-read failed, publish skipped",
                topic=topic.value,
                error=str(e),
            )
            return False
        return await publish_best_effort(
            self.bus, topic, [model.model_validate(doc).to_public() for doc in docs]
        )
