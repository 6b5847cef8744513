"""Durable FIFO log of pending mutations.

Every write the UI makes while offline (or before the remote confirms it)
becomes a :class:`QueuedAction` appended to the :class:`MutationQueue`.
The queue is mirrored in memory and in the reserved ``syncQueue``
collection of the :class:`~propertyhub_sync.store.PersistentStore`, and
every mutating call is persisted before it returns.

Lifecycle of an action::

    enqueue -> pending -> remove              (remote confirmed)
                  |
                  +-> requeue_with_increment -> pending   (retry_count < max_retries)
                                             -> dropped   (reported, never silent)
"""
from __future__ import annotations

import datetime
import logging
import secrets
import string
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from propertyhub_sync.errors import (
    ErrorCategory,
    ErrorCode,
    ErrorEvent,
    ErrorReporter,
    ErrorSeverity,
    LoggingErrorReporter,
)
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.store.schema import SYNC_QUEUE_COLLECTION

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_action_id() -> str:
    """Return a unique action id of the form ``action_<epoch-ms>_<suffix>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"action_{int(time.time() * 1000)}_{suffix}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class ActionKind(str, Enum):
    """Kind of mutation an action asks the remote to perform."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class QueuedAction(BaseModel):
    """One pending mutation intent.

    Attributes
    ----------
    id:
        Unique identifier assigned at enqueue time. Stable across retries
        and restarts so the remote can deduplicate.
    kind:
        The :class:`ActionKind`.
    resource:
        Name of the collection the mutation targets, e.g. ``"booking"``.
    payload:
        Opaque JSON data handed to the remote collaborator.
    enqueued_at:
        UTC time the action was enqueued.
    retry_count:
        Failed attempts so far.
    max_retries:
        Failed attempts after which the action is dropped.
    next_attempt_at:
        Earliest UTC time of the next attempt, or None for "immediately".
    last_error:
        Reason reported by the most recent failed attempt.
    """

    id: str = Field(default_factory=new_action_id)
    kind: ActionKind
    resource: str = Field(min_length=1)
    payload: Any = None
    enqueued_at: datetime.datetime = Field(default_factory=_utcnow)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    next_attempt_at: datetime.datetime | None = None
    last_error: str | None = None

    def to_record(self) -> dict[str, Any]:
        """Return the JSON-compatible record stored in ``syncQueue``."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "QueuedAction":
        """Rebuild an action from a stored record.

        Raises
        ------
        pydantic.ValidationError
            If the record does not describe a valid action.
        """
        return cls.model_validate(record)

    def is_due(self, now: datetime.datetime | None = None) -> bool:
        """Return True if the action may be attempted at *now*."""
        if self.next_attempt_at is None:
            return True
        return (now or _utcnow()) >= self.next_attempt_at


def describe_drop(action: QueuedAction) -> str:
    """Return the message reported when *action* exhausts its retries."""
    return f"Sync action exceeded max retries: {action.kind.value} {action.resource}"


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class MutationQueue:
    """Ordered, durable log of :class:`QueuedAction`.

    Parameters
    ----------
    store:
        An opened :class:`PersistentStore`; the queue owns its
        ``syncQueue`` collection.
    max_retries:
        ``max_retries`` stamped on newly enqueued actions.
    reporter:
        Receives a ``SYNC_ACTION_MAX_RETRIES`` event for every dropped
        action. Default: :class:`LoggingErrorReporter`.
    allowed_resources:
        If non-empty, only these resource names may be enqueued.
    """

    def __init__(
        self,
        store: PersistentStore,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        reporter: ErrorReporter | None = None,
        allowed_resources: Iterable[str] = (),
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._store = store
        self._max_retries = max_retries
        self._reporter = reporter or LoggingErrorReporter()
        self._allowed_resources = frozenset(allowed_resources)
        self._actions: list[QueuedAction] = []
        self._lock = threading.RLock()

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    def __contains__(self, action_id: object) -> bool:
        with self._lock:
            return any(action.id == action_id for action in self._actions)

    @contextmanager
    def locked(self) -> Iterator["MutationQueue"]:
        """Hold the queue lock so no enqueue interleaves with the caller."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Durability
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Rebuild the in-memory log from the durable ``syncQueue``.

        Stored rows that no longer validate are logged and skipped.

        Returns
        -------
        int
            Number of pending actions after loading.
        """
        with self._lock:
            loaded: list[QueuedAction] = []
            for record in self._store.get_all(SYNC_QUEUE_COLLECTION):
                try:
                    loaded.append(QueuedAction.from_record(record))
                except ValidationError as exc:
                    logger.warning(
                        "Skipping unreadable queued action %r: %s", record.get("id"), exc
                    )
            self._actions = loaded
            logger.debug("Loaded %d pending actions", len(loaded))
            return len(loaded)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enqueue(self, kind: ActionKind | str, resource: str, payload: Any = None) -> int:
        """Append a new action and persist it before returning.

        Parameters
        ----------
        kind:
            :class:`ActionKind` or its string value.
        resource:
            Target collection name.
        payload:
            Opaque JSON data for the remote call.

        Returns
        -------
        int
            Number of pending actions after the append.

        Raises
        ------
        ValueError
            If *kind* is unknown, *resource* is empty, or *resource* is not
            in ``allowed_resources`` when that set is non-empty.
        StorageError
            If the action could not be persisted; nothing is enqueued.
        """
        if not resource:
            raise ValueError("resource must not be empty")
        if self._allowed_resources and resource not in self._allowed_resources:
            raise ValueError(
                f"Resource {resource!r} is not permitted. "
                f"Allowed resources: {sorted(self._allowed_resources)}"
            )
        action = QueuedAction(
            kind=ActionKind(kind),
            resource=resource,
            payload=payload,
            max_retries=self._max_retries,
        )
        with self._lock:
            self._store.put(SYNC_QUEUE_COLLECTION, action.to_record())
            self._actions.append(action)
            logger.debug("Enqueued %s %s as %s", action.kind.value, resource, action.id)
            return len(self._actions)

    def snapshot(self) -> list[QueuedAction]:
        """Return copies of all pending actions in FIFO order."""
        with self._lock:
            return [action.model_copy() for action in self._actions]

    def remove(self, action_id: str) -> None:
        """Delete a confirmed action.

        Raises
        ------
        KeyError
            If no pending action has *action_id*.
        """
        with self._lock:
            position = self._position(action_id)
            self._store.delete(SYNC_QUEUE_COLLECTION, action_id)
            del self._actions[position]

    def requeue_with_increment(
        self,
        action_id: str,
        reason: str | None = None,
        next_attempt_at: datetime.datetime | None = None,
    ) -> QueuedAction | None:
        """Record a failed attempt for *action_id*.

        Increments ``retry_count``. When the new count reaches
        ``max_retries`` the action is dropped and reported instead of
        being kept.

        Parameters
        ----------
        action_id:
            The failed action.
        reason:
            Failure reason from the remote, stored as ``last_error``.
        next_attempt_at:
            Earliest time of the next attempt (backoff), or None.

        Returns
        -------
        QueuedAction | None
            The updated action, or None if it was dropped.

        Raises
        ------
        KeyError
            If no pending action has *action_id*.
        """
        with self._lock:
            position = self._position(action_id)
            updated = self._actions[position].model_copy(
                update={
                    "retry_count": self._actions[position].retry_count + 1,
                    "last_error": reason,
                    "next_attempt_at": next_attempt_at,
                }
            )
            if updated.retry_count >= updated.max_retries:
                self._store.delete(SYNC_QUEUE_COLLECTION, action_id)
                del self._actions[position]
                self._report_drop(updated)
                return None
            self._store.put(SYNC_QUEUE_COLLECTION, updated.to_record())
            self._actions[position] = updated
            return updated

    def replace(self, actions: Iterable[QueuedAction]) -> int:
        """Atomically swap the whole log for *actions*, in the given order.

        Returns
        -------
        int
            Number of pending actions after the swap.

        Raises
        ------
        StorageError
            If the durable write fails; the in-memory log is unchanged.
        """
        new_actions = list(actions)
        with self._lock:
            self._store.replace_all(
                SYNC_QUEUE_COLLECTION, [action.to_record() for action in new_actions]
            )
            self._actions = new_actions
            return len(new_actions)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _position(self, action_id: str) -> int:
        for position, action in enumerate(self._actions):
            if action.id == action_id:
                return position
        raise KeyError(f"No pending action with id {action_id!r}")

    def _report_drop(self, action: QueuedAction) -> None:
        message = describe_drop(action)
        logger.warning("%s (id=%s, last_error=%s)", message, action.id, action.last_error)
        self._reporter.report(
            ErrorEvent(
                code=ErrorCode.SYNC_ACTION_MAX_RETRIES,
                message=message,
                severity=ErrorSeverity.MEDIUM,
                category=ErrorCategory.SYNC,
                context={
                    "action_id": action.id,
                    "retry_count": action.retry_count,
                    "last_error": action.last_error,
                },
            )
        )


__all__ = [
    "ActionKind",
    "DEFAULT_MAX_RETRIES",
    "MutationQueue",
    "QueuedAction",
    "describe_drop",
    "new_action_id",
]
