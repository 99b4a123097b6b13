"""SQLite record store backend.

Documents are stored as JSON text in one table, one row per record, with the
collection's key fields serialized into the primary key. Filters are
translated to ``json_extract`` predicates.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import aiosqlite

from bigboat.storage.filters import Filter, Predicate
from bigboat.storage.records import RecordCollection, RecordStore
from bigboat.utils.errors import DuplicateRecordError
from bigboat.utils.telemetry import get_logger


def _predicate_sql(predicate: Predicate) -> tuple[str, list[Any]]:
    path = f"$.{predicate.field}"
    value = predicate.value
    if isinstance(value, bool):
        value = int(value)

    if predicate.op == "eq":
        if value is None:
            return "json_extract(doc, ?) IS NULL", [path]
        return "json_extract(doc, ?) = ?", [path, value]

    if value is None:
        return "json_extract(doc, ?) IS NOT NULL", [path]
    return "(json_extract(doc, ?) IS NULL OR json_extract(doc, ?) != ?)", [
        path,
        path,
        value,
    ]


def _where(collection: str, filter: Filter) -> tuple[str, list[Any]]:
    clauses = ["collection = ?"]
    params: list[Any] = [collection]
    for predicate in filter.predicates:
        sql, args = _predicate_sql(predicate)
        clauses.append(sql)
        params.extend(args)
    return " AND ".join(clauses), params


class SQLiteCollection(RecordCollection):
    """Collection view over the shared ``records`` table."""

    def __init__(self, store: "SQLiteRecordStore", name: str, key_fields: tuple[str, ...]):
        super().__init__(name, key_fields)
        self._store = store

    def _encode_key(self, doc: dict[str, Any]) -> str:
        return json.dumps(list(self.key_of(doc)))

    async def find(self, filter: Filter | None = None) -> list[dict[str, Any]]:
        db = self._store.connection
        where, params = _where(self.name, filter or Filter())
        async with self._store.lock:
            async with db.execute(
                f"SELECT doc FROM records WHERE {where} ORDER BY rowid", params
            ) as cursor:
                rows = await cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    async def insert(self, doc: dict[str, Any]) -> dict[str, Any]:
        key = self._encode_key(doc)
        async with self._store.lock:
            await self._insert_row(key, doc)
            await self._store.connection.commit()
        return json.loads(json.dumps(doc))

    async def upsert(
        self,
        filter: Filter,
        patch: dict[str, Any],
        set_on_insert: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._store.lock:
            existing = await self._first(filter)
            if existing is not None:
                rowid, doc = existing
                result = await self._apply(rowid, doc, patch)
            else:
                result = self._seed(filter, patch, set_on_insert)
                await self._insert_row(self._encode_key(result), result)
            await self._store.connection.commit()
        return json.loads(json.dumps(result))

    async def update(
        self, filter: Filter, patch: dict[str, Any]
    ) -> dict[str, Any] | None:
        async with self._store.lock:
            existing = await self._first(filter)
            if existing is None:
                return None
            rowid, doc = existing
            result = await self._apply(rowid, doc, patch)
            await self._store.connection.commit()
        return result

    async def remove(self, filter: Filter) -> int:
        where, params = _where(self.name, filter)
        async with self._store.lock:
            async with self._store.connection.execute(
                f"DELETE FROM records WHERE {where}", params
            ) as cursor:
                deleted = cursor.rowcount
            await self._store.connection.commit()
        return deleted

    async def _first(self, filter: Filter) -> tuple[int, dict[str, Any]] | None:
        where, params = _where(self.name, filter)
        async with self._store.connection.execute(
            f"SELECT rowid, doc FROM records WHERE {where} ORDER BY rowid LIMIT 1",
            params,
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return int(row[0]), json.loads(row[1])

    async def _insert_row(self, key: str, doc: dict[str, Any]) -> None:
        try:
            await self._store.connection.execute(
                "INSERT INTO records (collection, key, doc) VALUES (?, ?, ?)",
                (self.name, key, json.dumps(doc)),
            )
        except aiosqlite.IntegrityError as e:
            key_values = dict(zip(self.key_fields, json.loads(key)))
            raise DuplicateRecordError(self.name, key_values) from e

    async def _apply(
        self, rowid: int, doc: dict[str, Any], patch: dict[str, Any]
    ) -> dict[str, Any]:
        self._check_patch(doc, patch)
        doc.update(patch)
        await self._store.connection.execute(
            "UPDATE records SET doc = ? WHERE rowid = ?", (json.dumps(doc), rowid)
        )
        return doc


class SQLiteRecordStore(RecordStore):
    """Record store persisted in a SQLite database via aiosqlite."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        super().__init__()
        self.db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None
        self.lock = asyncio.Lock()
        self._logger = get_logger("bigboat.storage.sqlite")

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteRecordStore not initialized")
        return self._db

    def _make_collection(
        self, name: str, key_fields: tuple[str, ...]
    ) -> RecordCollection:
        return SQLiteCollection(self, name, key_fields)

    async def initialize(self) -> None:
        """Open the database connection and create the schema."""
        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                collection TEXT NOT NULL,
                key TEXT NOT NULL,
                doc TEXT NOT NULL,
                PRIMARY KEY (collection, key)
            )
        """
        )
        await self._db.commit()

        self._logger.info("SQLiteRecordStore initialized", db_path=self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
        self._logger.info("SQLiteRecordStore closed", db_path=self.db_path)
