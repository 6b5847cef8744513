"""SQLite-backed persistent store for offline records.

Records are JSON objects grouped into named collections. Every collection
has a primary key field and optional secondary indices (see
:mod:`propertyhub_sync.store.schema`). Everything lives in one SQLite
database file, so the cache survives process restarts.

Tables
------
records      : one row per record, ``seq`` preserves first-insertion order.
record_index : one row per (record, indexed field) for secondary lookups.

Keys and index values are stored JSON-encoded, so ``1`` and ``"1"`` are
distinct keys.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from propertyhub_sync.errors import StorageError, StorageInitError
from propertyhub_sync.store.schema import (
    DEFAULT_SCHEMAS,
    CollectionSchema,
    with_required_collections,
)

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS records (
        collection  TEXT    NOT NULL,
        record_key  TEXT    NOT NULL,
        seq         INTEGER NOT NULL,
        body        TEXT    NOT NULL,
        PRIMARY KEY (collection, record_key)
    );

    CREATE INDEX IF NOT EXISTS idx_records_seq
        ON records(collection, seq);

    CREATE TABLE IF NOT EXISTS record_index (
        collection  TEXT NOT NULL,
        index_name  TEXT NOT NULL,
        value       TEXT NOT NULL,
        record_key  TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_record_index_lookup
        ON record_index(collection, index_name, value);
    CREATE INDEX IF NOT EXISTS idx_record_index_key
        ON record_index(collection, record_key);
"""

Record = dict[str, Any]


def _encode(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _encode_index_value(value: object) -> str:
    # Index lookups compare numbers by value: 100 and 100.0 share one encoding.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _encode(value)



class PersistentStore:
    """Durable, collection-partitioned key-value store.

    Parameters
    ----------
    path:
        Database file path, or ``":memory:"`` for a non-durable store
        (tests only).
    schemas:
        Collection layouts. The ``userData`` and ``syncQueue`` collections
        are always added if missing. Default: :data:`DEFAULT_SCHEMAS`.

    Example
    -------
    ::

        with PersistentStore("cache.db") as store:
            store.put("properties", {"id": "p1", "location": "Lagos"})
            store.get_all_by_index("properties", "location", "Lagos")
    """

    def __init__(
        self,
        path: str | Path = MEMORY_DATABASE,
        schemas: Iterable[CollectionSchema] | None = None,
    ) -> None:
        self._path = str(path)
        self._schemas: dict[str, CollectionSchema] = {
            schema.name: schema
            for schema in with_required_collections(
                tuple(schemas) if schemas is not None else DEFAULT_SCHEMAS
            )
        }
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def path(self) -> str:
        """Return the database location this store was created with."""
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def schemas(self) -> dict[str, CollectionSchema]:
        """Return the collection layouts keyed by collection name."""
        return dict(self._schemas)

    def open(self) -> None:
        """Open the database and create tables if needed.

        Raises
        ------
        StorageInitError
            If the database cannot be opened or the schema cannot be
            created. The store stays closed.
        """
        with self._lock:
            if self._conn is not None:
                return
            conn: sqlite3.Connection | None = None
            try:
                if self._path != MEMORY_DATABASE:
                    Path(self._path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self._path, check_same_thread=False)
                if self._path != MEMORY_DATABASE:
                    conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=FULL")
                conn.executescript(_SCHEMA_SQL)
                conn.commit()
            except (sqlite3.Error, OSError) as exc:
                if conn is not None:
                    conn.close()
                raise StorageInitError(
                    f"Failed to open offline database at {self._path!r}: {exc}"
                ) from exc
            self._conn = conn
            logger.debug("Opened persistent store at %s", self._path)

    def close(self) -> None:
        """Close the database connection. Safe to call more than once."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.debug("Closed persistent store at %s", self._path)

    def __enter__(self) -> "PersistentStore":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, collection: str, record: Record) -> None:
        """Insert or update *record* by its primary key.

        An existing key keeps its original position in :meth:`get_all`.

        Raises
        ------
        KeyError
            If *collection* is not a known collection.
        ValueError
            If *record* has no value for the collection's key field.
        StorageError
            If the write fails.
        """
        self.put_many(collection, [record])

    def put_many(self, collection: str, records: Iterable[Record]) -> int:
        """Upsert several records in one transaction.

        Returns
        -------
        int
            Number of records written.
        """
        schema = self._schema(collection)
        rows = [self._prepare(schema, record) for record in records]
        with self._transaction("put") as conn:
            for key, body, index_rows in rows:
                self._write_row(conn, collection, key, body, index_rows)
        return len(rows)

    def delete(self, collection: str, key: object) -> None:
        """Remove the record stored under *key*. Missing keys are ignored."""
        self._schema(collection)
        encoded = _encode(key)
        with self._transaction("delete") as conn:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND record_key = ?",
                (collection, encoded),
            )
            conn.execute(
                "DELETE FROM record_index WHERE collection = ? AND record_key = ?",
                (collection, encoded),
            )

    def clear(self, collection: str) -> int:
        """Remove every record in *collection*. Irreversible.

        Returns
        -------
        int
            Number of records removed.
        """
        self._schema(collection)
        with self._transaction("clear") as conn:
            return self._clear_rows(conn, collection)

    def replace_all(self, collection: str, records: Iterable[Record]) -> int:
        """Atomically replace the content of *collection* with *records*.

        The new records are stored in the given order. Either the whole
        swap is committed or nothing changes.

        Returns
        -------
        int
            Number of records now stored.
        """
        schema = self._schema(collection)
        rows = [self._prepare(schema, record) for record in records]
        with self._transaction("replace") as conn:
            self._clear_rows(conn, collection)
            for key, body, index_rows in rows:
                self._write_row(conn, collection, key, body, index_rows)
        return len(rows)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, key: object) -> Record | None:
        """Return the record stored under *key*, or None."""
        self._schema(collection)
        rows = self._query(
            "SELECT body FROM records WHERE collection = ? AND record_key = ?",
            (collection, _encode(key)),
        )
        return json.loads(rows[0][0]) if rows else None

    def get_all(self, collection: str) -> list[Record]:
        """Return all records of *collection* in insertion order."""
        self._schema(collection)
        rows = self._query(
            "SELECT body FROM records WHERE collection = ? ORDER BY seq",
            (collection,),
        )
        return [json.loads(body) for (body,) in rows]

    def get_all_by_index(self, collection: str, index_name: str, value: object) -> list[Record]:
        """Return records whose indexed field *index_name* equals *value*.

        Raises
        ------
        KeyError
            If the collection has no index called *index_name*.
        """
        schema = self._schema(collection)
        if index_name not in schema.indices:
            raise KeyError(
                f"Collection {collection!r} has no index {index_name!r}. "
                f"Available: {list(schema.indices)}"
            )
        rows = self._query(
            """SELECT r.body FROM records r
               JOIN record_index i
                 ON i.collection = r.collection AND i.record_key = r.record_key
               WHERE i.collection = ? AND i.index_name = ? AND i.value = ?
               ORDER BY r.seq""",
            (collection, index_name, _encode_index_value(value)),
        )
        return [json.loads(body) for (body,) in rows]

    def count(self, collection: str) -> int:
        """Return the number of records in *collection*."""
        self._schema(collection)
        rows = self._query(
            "SELECT COUNT(*) FROM records WHERE collection = ?", (collection,)
        )
        return int(rows[0][0])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _schema(self, collection: str) -> CollectionSchema:
        try:
            return self._schemas[collection]
        except KeyError:
            raise KeyError(
                f"Unknown collection {collection!r}. Known: {sorted(self._schemas)}"
            ) from None

    @staticmethod
    def _prepare(
        schema: CollectionSchema, record: Record
    ) -> tuple[str, str, list[tuple[str, str]]]:
        if record.get(schema.key_field) is None:
            raise ValueError(
                f"Record for collection {schema.name!r} is missing key field "
                f"{schema.key_field!r}"
            )
        try:
            body = json.dumps(record)
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"Record for collection {schema.name!r} is not JSON-serialisable: {exc}"
            ) from exc
        index_rows = [
            (name, _encode_index_value(record[name]))
            for name in schema.indices
            if record.get(name) is not None
        ]
        return _encode(record[schema.key_field]), body, index_rows

    @staticmethod
    def _write_row(
        conn: sqlite3.Connection,
        collection: str,
        key: str,
        body: str,
        index_rows: list[tuple[str, str]],
    ) -> None:
        conn.execute(
            """INSERT INTO records (collection, record_key, seq, body)
               VALUES (
                   ?, ?,
                   (SELECT COALESCE(MAX(seq), 0) + 1 FROM records WHERE collection = ?),
                   ?
               )
               ON CONFLICT(collection, record_key) DO UPDATE SET body = excluded.body""",
            (collection, key, collection, body),
        )
        conn.execute(
            "DELETE FROM record_index WHERE collection = ? AND record_key = ?",
            (collection, key),
        )
        conn.executemany(
            """INSERT INTO record_index (collection, index_name, value, record_key)
               VALUES (?, ?, ?, ?)""",
            [(collection, name, value, key) for name, value in index_rows],
        )

    @staticmethod
    def _clear_rows(conn: sqlite3.Connection, collection: str) -> int:
        cursor = conn.execute("DELETE FROM records WHERE collection = ?", (collection,))
        conn.execute("DELETE FROM record_index WHERE collection = ?", (collection,))
        return cursor.rowcount

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(f"Persistent store {self._path!r} is not open")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    yield conn
            except sqlite3.Error as exc:
                raise StorageError(f"Storage {operation} failed: {exc}") from exc

    def _query(self, sql: str, params: tuple[object, ...]) -> list[tuple[Any, ...]]:
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Storage read failed: {exc}") from exc


__all__ = ["MEMORY_DATABASE", "PersistentStore", "Record"]
