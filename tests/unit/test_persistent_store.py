"""Tests for PersistentStore and CollectionSchema."""
from __future__ import annotations

from pathlib import Path

import pytest

from propertyhub_sync.errors import ErrorCode, StorageError, StorageInitError
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.store.schema import (
    SYNC_QUEUE_COLLECTION,
    USER_DATA_COLLECTION,
    CollectionSchema,
    resolve_collection,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "offline.db"


@pytest.fixture()
def store(db_path: Path) -> PersistentStore:
    s = PersistentStore(db_path)
    s.open()
    yield s
    s.close()


def _property(pid: str, location: str = "Lagos", price: float = 100) -> dict[str, object]:
    return {"id": pid, "title": f"House {pid}", "location": location, "type": "house", "price": price}


# ---------------------------------------------------------------------------
# CollectionSchema
# ---------------------------------------------------------------------------


class TestCollectionSchema:
    def test_defaults(self) -> None:
        schema = CollectionSchema("things")
        assert schema.key_field == "id"
        assert schema.indices == ()
        assert schema.evictable is False

    def test_empty_name_raises(self) -> None:
        with pytest.raises(ValueError, match="name"):
            CollectionSchema("")

    def test_duplicate_indices_raise(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            CollectionSchema("things", indices=("a", "a"))

    def test_required_collections_always_present(self) -> None:
        s = PersistentStore(schemas=[CollectionSchema("things")])
        assert set(s.schemas) == {"things", USER_DATA_COLLECTION, SYNC_QUEUE_COLLECTION}


class TestResolveCollection:
    def test_collection_name_passes_through(self) -> None:
        assert resolve_collection("bookings", ["bookings", "properties"]) == "bookings"

    def test_singular_alias(self) -> None:
        assert resolve_collection("booking", ["bookings"]) == "bookings"
        assert resolve_collection("message", ["chatMessages"]) == "chatMessages"

    def test_unknown_resource(self) -> None:
        assert resolve_collection("invoice", ["bookings"]) is None

    def test_reserved_collections_never_targets(self) -> None:
        assert resolve_collection(SYNC_QUEUE_COLLECTION, [SYNC_QUEUE_COLLECTION]) is None
        assert resolve_collection("user", [USER_DATA_COLLECTION]) is None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_open_creates_file(self, db_path: Path) -> None:
        s = PersistentStore(db_path)
        s.open()
        assert db_path.exists()
        assert s.is_open
        s.close()
        assert not s.is_open

    def test_open_twice_is_noop(self, store: PersistentStore) -> None:
        store.open()
        assert store.is_open

    def test_close_twice_is_safe(self, db_path: Path) -> None:
        s = PersistentStore(db_path)
        s.open()
        s.close()
        s.close()

    def test_context_manager(self, db_path: Path) -> None:
        with PersistentStore(db_path) as s:
            s.put("properties", _property("p1"))
        assert not s.is_open

    def test_open_failure_is_fatal(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        s = PersistentStore(blocker / "offline.db")
        with pytest.raises(StorageInitError) as excinfo:
            s.open()
        assert excinfo.value.code == ErrorCode.STORAGE_OPEN_FAILED
        assert not s.is_open

    def test_use_before_open_raises_storage_error(self, db_path: Path) -> None:
        s = PersistentStore(db_path)
        with pytest.raises(StorageError) as excinfo:
            s.get_all("properties")
        assert excinfo.value.code == ErrorCode.FATAL_STORAGE_ERROR

    def test_memory_store(self) -> None:
        with PersistentStore() as s:
            s.put("properties", _property("p1"))
            assert s.count("properties") == 1


# ---------------------------------------------------------------------------
# Put / get / delete
# ---------------------------------------------------------------------------


class TestPutGet:
    def test_put_then_get(self, store: PersistentStore) -> None:
        store.put("properties", _property("p1"))
        assert store.get("properties", "p1")["title"] == "House p1"

    def test_get_missing_returns_none(self, store: PersistentStore) -> None:
        assert store.get("properties", "missing") is None

    def test_put_upserts(self, store: PersistentStore) -> None:
        store.put("properties", _property("p1", price=100))
        store.put("properties", _property("p1", price=250))
        assert store.count("properties") == 1
        assert store.get("properties", "p1")["price"] == 250

    def test_upsert_keeps_insertion_position(self, store: PersistentStore) -> None:
        for pid in ("a", "b", "c"):
            store.put("properties", _property(pid))
        store.put("properties", _property("a", price=999))
        assert [r["id"] for r in store.get_all("properties")] == ["a", "b", "c"]

    def test_int_and_str_keys_are_distinct(self, store: PersistentStore) -> None:
        store.put("properties", {"id": 1, "location": "x"})
        store.put("properties", {"id": "1", "location": "y"})
        assert store.get("properties", 1)["location"] == "x"
        assert store.get("properties", "1")["location"] == "y"

    def test_custom_key_field(self, store: PersistentStore) -> None:
        store.put(USER_DATA_COLLECTION, {"key": "theme", "data": "dark"})
        assert store.get(USER_DATA_COLLECTION, "theme")["data"] == "dark"

    def test_missing_key_field_raises(self, store: PersistentStore) -> None:
        with pytest.raises(ValueError, match="missing key field"):
            store.put("properties", {"title": "no id"})

    def test_unserialisable_record_raises(self, store: PersistentStore) -> None:
        with pytest.raises(ValueError, match="JSON"):
            store.put("properties", {"id": "p1", "blob": object()})

    def test_unknown_collection_raises(self, store: PersistentStore) -> None:
        with pytest.raises(KeyError, match="Unknown collection"):
            store.put("invoices", {"id": "i1"})

    def test_delete(self, store: PersistentStore) -> None:
        store.put("properties", _property("p1"))
        store.delete("properties", "p1")
        assert store.get("properties", "p1") is None

    def test_delete_missing_is_ignored(self, store: PersistentStore) -> None:
        store.delete("properties", "nope")

    def test_put_many(self, store: PersistentStore) -> None:
        written = store.put_many("properties", [_property("a"), _property("b")])
        assert written == 2
        assert store.count("properties") == 2

    def test_put_many_is_all_or_nothing(self, store: PersistentStore) -> None:
        with pytest.raises(ValueError):
            store.put_many("properties", [_property("a"), {"title": "no id"}])
        assert store.count("properties") == 0


# ---------------------------------------------------------------------------
# Ordering and indices
# ---------------------------------------------------------------------------


class TestGetAll:
    def test_insertion_order(self, store: PersistentStore) -> None:
        for pid in ("z", "a", "m"):
            store.put("properties", _property(pid))
        assert [r["id"] for r in store.get_all("properties")] == ["z", "a", "m"]

    def test_each_call_is_fresh(self, store: PersistentStore) -> None:
        store.put("properties", _property("a"))
        first = store.get_all("properties")
        first.clear()
        assert len(store.get_all("properties")) == 1

    def test_collections_are_isolated(self, store: PersistentStore) -> None:
        store.put("properties", _property("x"))
        store.put("bookings", {"id": "x", "status": "pending"})
        assert store.count("properties") == 1
        assert store.count("bookings") == 1


class TestGetAllByIndex:
    def test_lookup_by_location(self, store: PersistentStore) -> None:
        store.put("properties", _property("a", location="Lagos"))
        store.put("properties", _property("b", location="Accra"))
        store.put("properties", _property("c", location="Lagos"))
        result = store.get_all_by_index("properties", "location", "Lagos")
        assert [r["id"] for r in result] == ["a", "c"]

    def test_index_follows_updates(self, store: PersistentStore) -> None:
        store.put("bookings", {"id": "b1", "status": "pending"})
        store.put("bookings", {"id": "b1", "status": "confirmed"})
        assert store.get_all_by_index("bookings", "status", "pending") == []
        assert len(store.get_all_by_index("bookings", "status", "confirmed")) == 1

    def test_index_cleared_on_delete(self, store: PersistentStore) -> None:
        store.put("bookings", {"id": "b1", "userId": "u1"})
        store.delete("bookings", "b1")
        assert store.get_all_by_index("bookings", "userId", "u1") == []

    def test_numeric_index_value(self, store: PersistentStore) -> None:
        store.put("properties", _property("a", price=100))
        store.put("properties", _property("b", price=200))
        assert [r["id"] for r in store.get_all_by_index("properties", "price", 200)] == ["b"]

    def test_integral_float_matches_int(self, store: PersistentStore) -> None:
        store.put("properties", _property("a", price=100.0))
        store.put("properties", _property("b", price=100))
        store.put("properties", _property("c", price=100.5))
        assert [r["id"] for r in store.get_all_by_index("properties", "price", 100)] == ["a", "b"]
        assert [r["id"] for r in store.get_all_by_index("properties", "price", 100.0)] == ["a", "b"]
        assert [r["id"] for r in store.get_all_by_index("properties", "price", 100.5)] == ["c"]
        assert store.get("properties", "a")["price"] == 100.0

    def test_records_without_field_are_not_indexed(self, store: PersistentStore) -> None:
        store.put("notifications", {"id": "n1"})
        assert store.get_all_by_index("notifications", "userId", None) == []

    def test_unknown_index_raises(self, store: PersistentStore) -> None:
        with pytest.raises(KeyError, match="no index"):
            store.get_all_by_index("properties", "bedrooms", 3)


# ---------------------------------------------------------------------------
# Bulk operations and durability
# ---------------------------------------------------------------------------


class TestBulkOperations:
    def test_clear_returns_removed_count(self, store: PersistentStore) -> None:
        store.put_many("properties", [_property("a"), _property("b")])
        assert store.clear("properties") == 2
        assert store.get_all("properties") == []
        assert store.get_all_by_index("properties", "location", "Lagos") == []

    def test_clear_leaves_other_collections(self, store: PersistentStore) -> None:
        store.put("properties", _property("a"))
        store.put("bookings", {"id": "b1"})
        store.clear("properties")
        assert store.count("bookings") == 1

    def test_replace_all_sets_new_order(self, store: PersistentStore) -> None:
        store.put_many("bookings", [{"id": "a"}, {"id": "b"}, {"id": "c"}])
        store.replace_all("bookings", [{"id": "c"}, {"id": "a"}])
        assert [r["id"] for r in store.get_all("bookings")] == ["c", "a"]

    def test_replace_all_is_atomic(self, store: PersistentStore) -> None:
        store.put_many("bookings", [{"id": "a"}, {"id": "b"}])
        with pytest.raises(ValueError):
            store.replace_all("bookings", [{"id": "c"}, {"status": "no id"}])
        assert [r["id"] for r in store.get_all("bookings")] == ["a", "b"]


class TestDurability:
    def test_records_survive_reopen(self, db_path: Path) -> None:
        with PersistentStore(db_path) as s:
            s.put_many("properties", [_property("a"), _property("b", location="Accra")])
        with PersistentStore(db_path) as reopened:
            assert [r["id"] for r in reopened.get_all("properties")] == ["a", "b"]
            assert len(reopened.get_all_by_index("properties", "location", "Accra")) == 1
