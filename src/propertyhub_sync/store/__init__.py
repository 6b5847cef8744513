"""Durable local storage: collection schemas and the SQLite-backed store."""
from __future__ import annotations

from propertyhub_sync.store.persistent import MEMORY_DATABASE, PersistentStore, Record
from propertyhub_sync.store.schema import (
    DEFAULT_SCHEMAS,
    SYNC_QUEUE_COLLECTION,
    USER_DATA_COLLECTION,
    CollectionSchema,
)

__all__ = [
    "CollectionSchema",
    "DEFAULT_SCHEMAS",
    "MEMORY_DATABASE",
    "PersistentStore",
    "Record",
    "SYNC_QUEUE_COLLECTION",
    "USER_DATA_COLLECTION",
]
