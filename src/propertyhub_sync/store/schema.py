"""Collection schemas for the persistent store.

A :class:`CollectionSchema` names a collection, the record field used as
its primary key, and the record fields that get a secondary index.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

SYNC_QUEUE_COLLECTION = "syncQueue"
USER_DATA_COLLECTION = "userData"


@dataclass(frozen=True)
class CollectionSchema:
    """Layout of a single named collection.

    Attributes
    ----------
    name:
        Collection name, e.g. ``"properties"``.
    key_field:
        Record field holding the primary key. Default: ``"id"``.
    indices:
        Record fields that can be queried through
        :meth:`~propertyhub_sync.store.persistent.PersistentStore.get_all_by_index`.
    evictable:
        Whether :meth:`~propertyhub_sync.engine.OfflineSyncEngine.clear_cache`
        wipes this collection.
    """

    name: str
    key_field: str = "id"
    indices: tuple[str, ...] = field(default_factory=tuple)
    evictable: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must not be empty")
        if not self.key_field:
            raise ValueError("key_field must not be empty")
        if len(set(self.indices)) != len(self.indices):
            raise ValueError(f"Duplicate index names in collection {self.name!r}")


DEFAULT_SCHEMAS: tuple[CollectionSchema, ...] = (
    CollectionSchema("properties", indices=("location", "type", "price"), evictable=True),
    CollectionSchema(USER_DATA_COLLECTION, key_field="key"),
    CollectionSchema("notifications", indices=("userId", "timestamp"), evictable=True),
    CollectionSchema("chatMessages", indices=("roomId", "timestamp"), evictable=True),
    CollectionSchema("bookings", indices=("userId", "status"), evictable=True),
    CollectionSchema(SYNC_QUEUE_COLLECTION),
)


# Singular resource names used by the UI when enqueuing, mapped to collections.
RESOURCE_ALIASES: dict[str, str] = {
    "property": "properties",
    "booking": "bookings",
    "message": "chatMessages",
    "notification": "notifications",
}


def resolve_collection(resource: str, known: Iterable[str]) -> str | None:
    """Return the collection a mutation on *resource* writes to, or None.

    *resource* may be a collection name or one of :data:`RESOURCE_ALIASES`.
    The reserved queue and user-data collections are never targets.
    """
    names = set(known) - {SYNC_QUEUE_COLLECTION, USER_DATA_COLLECTION}
    if resource in names:
        return resource
    alias = RESOURCE_ALIASES.get(resource)
    return alias if alias in names else None


def with_required_collections(
    schemas: tuple[CollectionSchema, ...] | list[CollectionSchema],
) -> tuple[CollectionSchema, ...]:
    """Return *schemas* plus the queue and user-data collections if absent."""
    names = {schema.name for schema in schemas}
    result = list(schemas)
    if USER_DATA_COLLECTION not in names:
        result.append(CollectionSchema(USER_DATA_COLLECTION, key_field="key"))
    if SYNC_QUEUE_COLLECTION not in names:
        result.append(CollectionSchema(SYNC_QUEUE_COLLECTION))
    return tuple(result)


__all__ = [
    "CollectionSchema",
    "DEFAULT_SCHEMAS",
    "RESOURCE_ALIASES",
    "SYNC_QUEUE_COLLECTION",
    "USER_DATA_COLLECTION",
    "resolve_collection",
    "with_required_collections",
]
