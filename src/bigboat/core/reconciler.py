"""Reconciliation of agent snapshots into the instance store.

One pass merges a point-in-time snapshot of live instances into the store,
then garbage-collects every record the pass did not touch, except records
still in the ``created`` state: their creation may not have reached the agent
yet, so the agent's silence about them proves nothing.

Ordering within a pass is strict: all upserts, then the sweep, then the
publication. A failed upsert aborts the pass before the sweep, so partial
writes never lead to deletions.

Passes must not overlap. The reconciler does not lock; callers serialize
passes, for instance through :class:`ReconciliationScheduler`.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from bigboat.bus import NotificationBus, Topic, publish_best_effort
from bigboat.schemas.models import AppDescriptor, Instance, InstanceState
from bigboat.schemas.types import ObservedFields, Snapshot
from bigboat.storage import INSTANCES, Filter, RecordStore, store_guard
from bigboat.utils.errors import DashboardError
from bigboat.utils.stamps import StampSource
from bigboat.utils.telemetry import (
    async_performance_timer,
    get_logger,
    record_instances_collected,
    record_reconciliation_pass,
    update_instances_count,
)

# Owned by the lifecycle controller; never written from a snapshot.
CONTROLLER_FIELDS = frozenset({"desired_state", "started_by", "stopped_by"})

# Applied from a snapshot only when the pass creates the record.
INSERT_ONLY_FIELDS = frozenset({"app", "storage_bucket"})

STAMP_FIELD = "reconciliation_stamp"


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass."""

    stamp: int
    upserted: list[str] = field(default_factory=list)
    removed: int = 0
    instances: list[dict[str, Any]] = field(default_factory=list)
    published: bool = False


def observed_state(reported: Any) -> str:
    """Normalize an agent-reported state.

    ``created`` is reserved for records the agent has never reported, so an
    observed ``created`` (like a missing or unrecognized state) becomes
    ``unknown``.
    """
    if reported is None:
        return InstanceState.UNKNOWN.value
    state = InstanceState.coerce(reported)
    if state is InstanceState.CREATED:
        return InstanceState.UNKNOWN.value
    return state.value


def _services(reported: Any) -> dict[str, Any]:
    if isinstance(reported, Mapping):
        return {
            str(k): dict(v) for k, v in reported.items() if isinstance(v, Mapping)
        }
    if isinstance(reported, list):
        return {
            str(s["name"]): {k: v for k, v in s.items() if k != "name"}
            for s in reported
            if isinstance(s, Mapping) and s.get("name")
        }
    return {}


def split_observed(
    fields: ObservedFields, stamp: int
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split reported fields into the observed patch and insert-only fields.

    Keys are matched in snake_case, so camelCase reports such as
    ``desiredState`` are excluded like their stored spelling.

    Returns:
        (patch, set_on_insert)
    """
    reported = {to_snake(str(k)): v for k, v in fields.items()}
    excluded = CONTROLLER_FIELDS | INSERT_ONLY_FIELDS | {"name", STAMP_FIELD}
    patch = {k: v for k, v in reported.items() if k not in excluded}
    patch["state"] = observed_state(reported.get("state"))
    patch["services"] = _services(reported.get("services"))
    if "status" in patch:
        patch["status"] = "" if patch["status"] is None else str(patch["status"])
    patch[STAMP_FIELD] = stamp

    set_on_insert: dict[str, Any] = {}
    if isinstance(reported.get("storage_bucket"), str):
        set_on_insert["storage_bucket"] = reported["storage_bucket"]
    app = reported.get("app")
    if isinstance(app, Mapping):
        try:
            set_on_insert["app"] = AppDescriptor.model_validate(app).to_record()
        except ValidationError as e:
            get_logger("bigboat.reconciler").debug(
                "Ignoring malformed reported app", error=str(e)
            )
    return patch, set_on_insert


def _validate_snapshot(snapshot: Snapshot) -> None:
    if not isinstance(snapshot, Mapping):
        raise ValueError("Snapshot must map instance names to reported fields")
    for name, fields in snapshot.items():
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Invalid instance name in snapshot: {name!r}")
        if not isinstance(fields, Mapping):
            raise ValueError(f"Reported fields of {name} must be a mapping")


class Reconciler:
    """Merges agent snapshots into the instance store.

    Args:
        store: Record store holding the instances collection
        bus: Bus receiving the full instance list after each pass
        stamps: Stamp source; a wall-clock based one by default
    """

    def __init__(
        self,
        store: RecordStore,
        bus: NotificationBus,
        stamps: StampSource | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.stamps = stamps or StampSource()
        self._active_passes = 0
        self._logger = get_logger("bigboat.reconciler")

    async def reconcile(self, snapshot: Snapshot) -> ReconciliationResult:
        """Run one reconciliation pass.

        Args:
            snapshot: Instance name -> fields currently reported by the agent

        Returns:
            Stamp, upserted names, removed count and the published instances

        Raises:
            ValueError: If the snapshot is malformed (nothing is written)
            StoreFailureError: If a store call fails; when an upsert fails no
                record is removed
        """
        _validate_snapshot(snapshot)
        stamp = self.stamps.next()

        if self._active_passes:
            self._logger.warning(
                "Overlapping reconciliation passes",
                stamp=stamp,
                active_passes=self._active_passes,
            )

        self._active_passes += 1
        try:
            async with async_performance_timer(
                "reconcile", stamp=stamp, logger=self._logger
            ):
                result = ReconciliationResult(stamp=stamp)
                result.upserted = await self._merge(snapshot, stamp)
                result.removed = await self._sweep(stamp)
                async with store_guard("find", INSTANCES):
                    docs = await self.store.instances.find()
                result.instances = [
                    Instance.model_validate(doc).to_public() for doc in docs
                ]
        except DashboardError:
            record_reconciliation_pass("error", len(snapshot))
            raise
        finally:
            self._active_passes -= 1

        record_reconciliation_pass("success", len(snapshot))
        record_instances_collected(result.removed)
        update_instances_count(len(result.instances))

        result.published = await publish_best_effort(
            self.bus, Topic.INSTANCES, result.instances
        )

        self._logger.info(
            "Reconciliation pass completed",
            stamp=stamp,
            reported=len(snapshot),
            upserted=len(result.upserted),
            removed=result.removed,
            stored=len(result.instances),
        )
        return result

    async def _merge(self, snapshot: Snapshot, stamp: int) -> list[str]:
        merged = []
        for name, fields in snapshot.items():
            patch, set_on_insert = split_observed(fields, stamp)
            async with store_guard("upsert", INSTANCES):
                await self.store.instances.upsert(
                    Filter.where(name=name), patch, set_on_insert
                )
            merged.append(name)
        return merged

    async def _sweep(self, stamp: int) -> int:
        stale = (
            Filter()
            .ne(STAMP_FIELD, stamp)
            .ne("state", InstanceState.CREATED.value)
        )
        async with store_guard("remove", INSTANCES):
            removed = await self.store.instances.remove(stale)

        if removed:
            self._logger.info("Stale instances removed", stamp=stamp, removed=removed)
        return removed


class ReconciliationScheduler:
    """Runs reconciliation passes one at a time.

    Snapshots are full-state, so when several arrive while a pass is running
    only the newest is reconciled next; callers of the superseded snapshots
    receive the result of the pass that replaced them.
    """

    def __init__(self, reconciler: Reconciler) -> None:
        self.reconciler = reconciler
        self._pending: tuple[Snapshot, list[asyncio.Future[ReconciliationResult]]] | None = None
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._logger = get_logger("bigboat.reconciler.scheduler")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            self._logger.info("Reconciliation scheduler started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pending:
            for waiter in self._pending[1]:
                waiter.cancel()
            self._pending = None
        self._logger.info("Reconciliation scheduler stopped")

    def submit(self, snapshot: Snapshot) -> "asyncio.Future[ReconciliationResult]":
        """Queue a snapshot, replacing any snapshot still waiting.

        Returns:
            Future resolved with the result of the pass covering this snapshot
        """
        _validate_snapshot(snapshot)
        waiter: asyncio.Future[ReconciliationResult] = (
            asyncio.get_running_loop().create_future()
        )
        if self._pending is not None:
            waiters = [*self._pending[1], waiter]
            self._logger.debug("Pending snapshot superseded", waiting=len(waiters))
        else:
            waiters = [waiter]
        self._pending = (snapshot, waiters)
        self._wakeup.set()
        return waiter

    async def _run(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            if self._pending is None:
                continue

            snapshot, waiters = self._pending
            self._pending = None
            try:
                result = await self.reconciler.reconcile(snapshot)
            except asyncio.CancelledError:
                for waiter in waiters:
                    waiter.cancel()
                raise
            except Exception as e:
                self._logger.error(
                    "Reconciliation pass failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                for waiter in waiters:
                    if not waiter.done():
                        waiter.set_exception(e)
            else:
                for waiter in waiters:
                    if not waiter.done():
                        waiter.set_result(result)
