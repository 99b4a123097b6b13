"""Persistent storage layer.

This package provides the keyed record collections for instances, buckets,
apps, resources and datastores, with in-memory and SQLite backends.
"""

from bigboat.storage.filters import Filter, Predicate
from bigboat.storage.records import (
    APPS,
    BUCKETS,
    DATASTORES,
    INSTANCES,
    RESOURCES,
    InMemoryRecordStore,
    RecordCollection,
    RecordStore,
    store_guard,
)
from bigboat.storage.sqlite_store import SQLiteRecordStore


def open_store(url: str) -> RecordStore:
    """Create an uninitialized record store from a database URL.

    Supported URLs are ``memory://`` and ``sqlite:///<path>``
    (``sqlite:///:memory:`` for a throwaway database).

    Raises:
        ValueError: If the URL scheme is not supported
    """
    if url.startswith("memory://"):
        return InMemoryRecordStore()
    if url.startswith("sqlite:///"):
        return SQLiteRecordStore(url[len("sqlite:///") :] or ":memory:")
    raise ValueError(f"Unsupported database URL: {url}")


__all__ = [
    "APPS",
    "BUCKETS",
    "DATASTORES",
    "Filter",
    "INSTANCES",
    "InMemoryRecordStore",
    "Predicate",
    "RecordCollection",
    "RESOURCES",
    "RecordStore",
    "SQLiteRecordStore",
    "open_store",
    "store_guard",
]
