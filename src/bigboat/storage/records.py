"""Keyed record collections and the in-memory store backend.

A record store holds the ``instances``, ``buckets`` and ``apps``
collections, plus the ``resources`` and ``datastores`` listings the dashboard
only reads. Every collection enforces uniqueness of its key fields. Each
individual call is atomic; nothing spans several calls.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from bigboat.storage.filters import Filter
from bigboat.utils.errors import (
    DashboardError,
    DuplicateRecordError,
    StoreFailureError,
)
from bigboat.utils.telemetry import get_logger

INSTANCES = "instances"
BUCKETS = "buckets"
APPS = "apps"
RESOURCES = "resources"
DATASTORES = "datastores"

KEY_FIELDS: dict[str, tuple[str, ...]] = {
    INSTANCES: ("name",),
    BUCKETS: ("name",),
    APPS: ("name", "version"),
    RESOURCES: ("name",),
    DATASTORES: ("name",),
}


class RecordCollection(ABC):
    """Keyed collection of JSON-like documents."""

    def __init__(self, name: str, key_fields: tuple[str, ...]) -> None:
        self.name = name
        self.key_fields = key_fields

    @abstractmethod
    async def find(self, filter: Filter | None = None) -> list[dict[str, Any]]:
        """Return copies of all documents matching the filter."""

    @abstractmethod
    async def insert(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Insert a new document.

        Raises:
            DuplicateRecordError: If a document with the same key exists
            ValueError: If the document lacks a key field
        """

    @abstractmethod
    async def upsert(
        self,
        filter: Filter,
        patch: dict[str, Any],
        set_on_insert: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Set ``patch`` fields on the first match, or create a document.

        A created document is seeded from the filter's equality predicates,
        then ``set_on_insert``, then ``patch``.

        Returns:
            The resulting document
        """

    @abstractmethod
    async def update(
        self, filter: Filter, patch: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Set ``patch`` fields on the first match.

        Returns:
            The updated document, or None when nothing matched
        """

    @abstractmethod
    async def remove(self, filter: Filter) -> int:
        """Delete every matching document and return how many were deleted."""

    async def find_one(self, filter: Filter) -> dict[str, Any] | None:
        docs = await self.find(filter)
        return docs[0] if docs else None

    def key_of(self, doc: dict[str, Any]) -> tuple[Any, ...]:
        """Key tuple of a document.

        Raises:
            ValueError: If a key field is missing or empty
        """
        key = tuple(doc.get(k) for k in self.key_fields)
        if any(v is None or v == "" for v in key):
            raise ValueError(
                f"Document in {self.name} must have key fields {self.key_fields}"
            )
        return key

    def _check_patch(self, doc: dict[str, Any], patch: dict[str, Any]) -> None:
        for k in self.key_fields:
            if k in patch and patch[k] != doc.get(k):
                raise ValueError(f"Key field {k} of {self.name} cannot be changed")

    def _seed(
        self,
        filter: Filter,
        patch: dict[str, Any],
        set_on_insert: dict[str, Any] | None,
    ) -> dict[str, Any]:
        return {**filter.equalities(), **(set_on_insert or {}), **patch}


class RecordStore(ABC):
    """Set of named collections sharing one backend."""

    def __init__(self) -> None:
        self._collections: dict[str, RecordCollection] = {}

    @abstractmethod
    def _make_collection(
        self, name: str, key_fields: tuple[str, ...]
    ) -> RecordCollection: ...

    async def initialize(self) -> None:
        """Prepare the backend."""

    async def close(self) -> None:
        """Release backend resources."""

    async def ping(self) -> bool:
        """Check that the backend answers."""
        await self.instances.find(Filter.where(name="__ping__"))
        return True

    def collection(self, name: str) -> RecordCollection:
        if name not in self._collections:
            if name not in KEY_FIELDS:
                raise KeyError(f"Unknown collection: {name}")
            self._collections[name] = self._make_collection(name, KEY_FIELDS[name])
        return self._collections[name]

    @property
    def instances(self) -> RecordCollection:
        return self.collection(INSTANCES)

    @property
    def buckets(self) -> RecordCollection:
        return self.collection(BUCKETS)

    @property
    def apps(self) -> RecordCollection:
        return self.collection(APPS)

    @property
    def resources(self) -> RecordCollection:
        return self.collection(RESOURCES)

    @property
    def datastores(self) -> RecordCollection:
        return self.collection(DATASTORES)

    async def __aenter__(self) -> "RecordStore":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()


class InMemoryCollection(RecordCollection):
    """Dictionary-backed collection guarded by an asyncio lock."""

    def __init__(self, name: str, key_fields: tuple[str, ...]) -> None:
        super().__init__(name, key_fields)
        self._docs: dict[tuple[Any, ...], dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def find(self, filter: Filter | None = None) -> list[dict[str, Any]]:
        filter = filter or Filter()
        async with self._lock:
            return [
                copy.deepcopy(doc) for doc in self._docs.values() if filter.matches(doc)
            ]

    async def insert(self, doc: dict[str, Any]) -> dict[str, Any]:
        key = self.key_of(doc)
        async with self._lock:
            if key in self._docs:
                raise DuplicateRecordError(self.name, dict(zip(self.key_fields, key)))
            self._docs[key] = copy.deepcopy(doc)
            return copy.deepcopy(doc)

    async def upsert(
        self,
        filter: Filter,
        patch: dict[str, Any],
        set_on_insert: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._first(filter)
            if existing is not None:
                return self._apply(existing, patch)

            doc = self._seed(filter, patch, set_on_insert)
            key = self.key_of(doc)
            if key in self._docs:
                raise DuplicateRecordError(self.name, dict(zip(self.key_fields, key)))
            self._docs[key] = copy.deepcopy(doc)
            return copy.deepcopy(doc)

    async def update(
        self, filter: Filter, patch: dict[str, Any]
    ) -> dict[str, Any] | None:
        async with self._lock:
            existing = self._first(filter)
            if existing is None:
                return None
            return self._apply(existing, patch)

    async def remove(self, filter: Filter) -> int:
        async with self._lock:
            doomed = [key for key, doc in self._docs.items() if filter.matches(doc)]
            for key in doomed:
                del self._docs[key]
            return len(doomed)

    def _first(self, filter: Filter) -> dict[str, Any] | None:
        for doc in self._docs.values():
            if filter.matches(doc):
                return doc
        return None

    def _apply(self, doc: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
        self._check_patch(doc, patch)
        doc.update(copy.deepcopy(patch))
        return copy.deepcopy(doc)


class InMemoryRecordStore(RecordStore):
    """Record store kept in process memory, for tests and single-node demos."""

    def __init__(self) -> None:
        super().__init__()
        self._logger = get_logger("bigboat.storage.memory")

    def _make_collection(
        self, name: str, key_fields: tuple[str, ...]
    ) -> RecordCollection:
        return InMemoryCollection(name, key_fields)

    async def initialize(self) -> None:
        self._logger.info("InMemoryRecordStore initialized")


@asynccontextmanager
async def store_guard(operation: str, collection: str) -> AsyncGenerator[None, None]:
    """Surface backend failures as StoreFailureError.

    Dashboard errors raised by the store itself (duplicate keys) pass through
    unchanged.
    """
    try:
        yield
    except DashboardError:
        raise
    except Exception as e:
        raise StoreFailureError(operation, collection, e) from e
