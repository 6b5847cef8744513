"""Tests for QueuedAction and MutationQueue."""
from __future__ import annotations

import datetime
import re
from pathlib import Path

import pytest
from pydantic import ValidationError

from propertyhub_sync.errors import ErrorCode, RecordingErrorReporter
from propertyhub_sync.queue.mutations import (
    ActionKind,
    MutationQueue,
    QueuedAction,
    describe_drop,
    new_action_id,
)
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.store.schema import SYNC_QUEUE_COLLECTION


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store(tmp_path: Path) -> PersistentStore:
    s = PersistentStore(tmp_path / "queue.db")
    s.open()
    yield s
    s.close()


@pytest.fixture()
def reporter() -> RecordingErrorReporter:
    return RecordingErrorReporter()


@pytest.fixture()
def queue(store: PersistentStore, reporter: RecordingErrorReporter) -> MutationQueue:
    return MutationQueue(store, max_retries=3, reporter=reporter)


# ---------------------------------------------------------------------------
# QueuedAction
# ---------------------------------------------------------------------------


class TestQueuedAction:
    def test_id_format(self) -> None:
        assert re.fullmatch(r"action_\d+_[0-9a-z]{9}", new_action_id())

    def test_ids_are_unique(self) -> None:
        assert len({new_action_id() for _ in range(200)}) == 200

    def test_defaults(self) -> None:
        action = QueuedAction(kind=ActionKind.CREATE, resource="booking")
        assert action.retry_count == 0
        assert action.max_retries == 3
        assert action.payload is None
        assert action.next_attempt_at is None
        assert action.enqueued_at.tzinfo is not None

    def test_empty_resource_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QueuedAction(kind=ActionKind.CREATE, resource="")

    def test_negative_retry_count_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QueuedAction(kind=ActionKind.UPDATE, resource="booking", retry_count=-1)

    def test_record_is_json_compatible(self) -> None:
        action = QueuedAction(kind=ActionKind.DELETE, resource="property", payload={"id": "p1"})
        record = action.to_record()
        assert record["kind"] == "DELETE"
        assert isinstance(record["enqueued_at"], str)
        restored = QueuedAction.from_record(record)
        assert restored.id == action.id
        assert restored.enqueued_at == action.enqueued_at
        assert restored.payload == {"id": "p1"}

    def test_is_due_without_schedule(self) -> None:
        assert QueuedAction(kind=ActionKind.CREATE, resource="booking").is_due()

    def test_is_due_respects_next_attempt(self) -> None:
        now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
        action = QueuedAction(
            kind=ActionKind.CREATE,
            resource="booking",
            next_attempt_at=now + datetime.timedelta(seconds=10),
        )
        assert not action.is_due(now)
        assert action.is_due(now + datetime.timedelta(seconds=10))

    def test_describe_drop(self) -> None:
        action = QueuedAction(kind=ActionKind.UPDATE, resource="booking")
        assert describe_drop(action) == "Sync action exceeded max retries: UPDATE booking"


# ---------------------------------------------------------------------------
# Enqueue
# ---------------------------------------------------------------------------


class TestEnqueue:
    def test_returns_pending_count(self, queue: MutationQueue) -> None:
        assert queue.enqueue(ActionKind.CREATE, "booking", {"id": "b1"}) == 1
        assert queue.enqueue("UPDATE", "booking", {"id": "b1"}) == 2
        assert len(queue) == 2

    def test_persisted_before_return(self, queue: MutationQueue, store: PersistentStore) -> None:
        queue.enqueue(ActionKind.CREATE, "booking", {"id": "b1"})
        records = store.get_all(SYNC_QUEUE_COLLECTION)
        assert len(records) == 1
        assert records[0]["payload"] == {"id": "b1"}

    def test_stamps_queue_max_retries(self, store: PersistentStore) -> None:
        q = MutationQueue(store, max_retries=5)
        q.enqueue(ActionKind.CREATE, "booking")
        assert q.snapshot()[0].max_retries == 5

    def test_empty_resource_rejected(self, queue: MutationQueue) -> None:
        with pytest.raises(ValueError, match="resource"):
            queue.enqueue(ActionKind.CREATE, "")
        assert len(queue) == 0

    def test_unknown_kind_rejected(self, queue: MutationQueue) -> None:
        with pytest.raises(ValueError):
            queue.enqueue("UPSERT", "booking")

    def test_allowed_resources(self, store: PersistentStore) -> None:
        q = MutationQueue(store, allowed_resources=["booking"])
        q.enqueue(ActionKind.CREATE, "booking")
        with pytest.raises(ValueError, match="not permitted"):
            q.enqueue(ActionKind.CREATE, "invoice")
        assert len(q) == 1

    def test_invalid_max_retries(self, store: PersistentStore) -> None:
        with pytest.raises(ValueError):
            MutationQueue(store, max_retries=0)


# ---------------------------------------------------------------------------
# Snapshot / load
# ---------------------------------------------------------------------------


class TestSnapshotAndLoad:
    def test_snapshot_is_fifo(self, queue: MutationQueue) -> None:
        for n in range(5):
            queue.enqueue(ActionKind.CREATE, "booking", {"id": f"b{n}"})
        assert [a.payload["id"] for a in queue.snapshot()] == ["b0", "b1", "b2", "b3", "b4"]

    def test_snapshot_is_a_copy(self, queue: MutationQueue) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        snap = queue.snapshot()
        snap.clear()
        assert len(queue) == 1

    def test_load_restores_order_after_restart(self, tmp_path: Path) -> None:
        path = tmp_path / "restart.db"
        with PersistentStore(path) as s:
            q = MutationQueue(s)
            for n in range(3):
                q.enqueue(ActionKind.CREATE, "booking", {"id": f"b{n}"})
            ids = [a.id for a in q.snapshot()]

        with PersistentStore(path) as reopened:
            restored = MutationQueue(reopened)
            assert restored.load() == 3
            assert [a.id for a in restored.snapshot()] == ids

    def test_load_skips_unreadable_rows(self, queue: MutationQueue, store: PersistentStore) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        store.put(SYNC_QUEUE_COLLECTION, {"id": "garbage", "kind": "NOPE"})
        assert queue.load() == 1

    def test_contains(self, queue: MutationQueue) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        action_id = queue.snapshot()[0].id
        assert action_id in queue
        assert "missing" not in queue


# ---------------------------------------------------------------------------
# Remove / requeue / replace
# ---------------------------------------------------------------------------


class TestRemove:
    def test_remove_is_durable(self, queue: MutationQueue, store: PersistentStore) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        action_id = queue.snapshot()[0].id
        queue.remove(action_id)
        assert len(queue) == 0
        assert store.get_all(SYNC_QUEUE_COLLECTION) == []

    def test_remove_unknown_raises(self, queue: MutationQueue) -> None:
        with pytest.raises(KeyError):
            queue.remove("missing")


class TestRequeueWithIncrement:
    def test_increments_and_persists(self, queue: MutationQueue, store: PersistentStore) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        action_id = queue.snapshot()[0].id
        updated = queue.requeue_with_increment(action_id, reason="timeout")
        assert updated is not None
        assert updated.retry_count == 1
        assert updated.last_error == "timeout"
        assert store.get(SYNC_QUEUE_COLLECTION, action_id)["retry_count"] == 1

    def test_keeps_position(self, queue: MutationQueue) -> None:
        for n in range(3):
            queue.enqueue(ActionKind.CREATE, "booking", {"id": f"b{n}"})
        middle = queue.snapshot()[1].id
        queue.requeue_with_increment(middle)
        assert queue.snapshot()[1].id == middle

    def test_stores_next_attempt(self, queue: MutationQueue) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        action_id = queue.snapshot()[0].id
        when = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
        updated = queue.requeue_with_increment(action_id, next_attempt_at=when)
        assert updated is not None
        assert updated.next_attempt_at == when

    def test_drops_at_max_retries(
        self,
        queue: MutationQueue,
        store: PersistentStore,
        reporter: RecordingErrorReporter,
    ) -> None:
        queue.enqueue(ActionKind.UPDATE, "booking")
        action_id = queue.snapshot()[0].id
        assert queue.requeue_with_increment(action_id) is not None
        assert queue.requeue_with_increment(action_id) is not None
        assert queue.requeue_with_increment(action_id, reason="boom") is None
        assert len(queue) == 0
        assert store.get(SYNC_QUEUE_COLLECTION, action_id) is None
        assert reporter.codes() == [ErrorCode.SYNC_ACTION_MAX_RETRIES]
        event = reporter.events[0]
        assert event.message == "Sync action exceeded max retries: UPDATE booking"
        assert event.context["action_id"] == action_id
        assert event.context["last_error"] == "boom"

    def test_unknown_id_raises(self, queue: MutationQueue) -> None:
        with pytest.raises(KeyError):
            queue.requeue_with_increment("missing")


class TestReplace:
    def test_replace_sets_order_durably(self, queue: MutationQueue, store: PersistentStore) -> None:
        for n in range(3):
            queue.enqueue(ActionKind.CREATE, "booking", {"id": f"b{n}"})
        actions = queue.snapshot()
        assert queue.replace([actions[2], actions[0]]) == 2
        assert [a.id for a in queue.snapshot()] == [actions[2].id, actions[0].id]
        assert [r["id"] for r in store.get_all(SYNC_QUEUE_COLLECTION)] == [
            actions[2].id,
            actions[0].id,
        ]

    def test_replace_with_empty(self, queue: MutationQueue, store: PersistentStore) -> None:
        queue.enqueue(ActionKind.CREATE, "booking")
        queue.replace([])
        assert len(queue) == 0
        assert store.count(SYNC_QUEUE_COLLECTION) == 0
