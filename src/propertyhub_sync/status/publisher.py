"""Sync status snapshot and its publisher.

:class:`SyncStatus` is derived state: queue length, the network flag and
the outcome of the last pass. The :class:`StatusPublisher` holds the
authoritative snapshot and pushes every new value to subscribers
synchronously; there is no buffering, so a subscriber always sees the
latest value.
"""
from __future__ import annotations

import dataclasses
import datetime
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from propertyhub_sync.observers import Broadcaster, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncStatus:
    """Immutable snapshot of sync progress.

    Attributes
    ----------
    is_online:
        Mirrors the network monitor.
    last_sync_time:
        UTC time the last pass completed, or None.
    pending_actions:
        Number of actions in the mutation queue.
    sync_in_progress:
        True while a pass is running (the single-flight flag).
    last_error:
        Message of the most recent reported failure in the current or
        last pass, or None.
    """

    is_online: bool = False
    last_sync_time: datetime.datetime | None = None
    pending_actions: int = 0
    sync_in_progress: bool = False
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation."""
        return {
            "is_online": self.is_online,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "pending_actions": self.pending_actions,
            "sync_in_progress": self.sync_in_progress,
            "last_error": self.last_error,
        }


StatusCallback = Callable[[SyncStatus], None]


class StatusPublisher:
    """Holds the current :class:`SyncStatus` and broadcasts changes.

    Parameters
    ----------
    initial:
        Starting snapshot. Default: an offline, idle, empty status.
    pending_count:
        Returns the live queue length. When given, every :meth:`update`
        reads ``pending_actions`` from it while holding the publish lock,
        so the last published snapshot always matches the queue.
    """

    def __init__(
        self,
        initial: SyncStatus | None = None,
        *,
        pending_count: Callable[[], int] | None = None,
    ) -> None:
        self._status = initial or SyncStatus()
        self._pending_count = pending_count
        self._listeners: Broadcaster[SyncStatus] = Broadcaster("sync status")
        self._lock = threading.RLock()

    def current(self) -> SyncStatus:
        """Return the latest snapshot."""
        with self._lock:
            return self._status

    def subscribe(self, callback: StatusCallback) -> Subscription:
        """Register *callback* and deliver the current snapshot to it.

        Returns
        -------
        Subscription
            Call it (or its ``unsubscribe``) to stop receiving updates.
        """
        with self._lock:
            subscription = self._listeners.add(callback)
            callback(self._status)
        return subscription

    def update(self, **changes: Any) -> SyncStatus:
        """Apply *changes* to the snapshot and broadcast the result.

        Broadcasts are serialised, so subscribers observe snapshots in the
        order they were produced. With a ``pending_count`` source, a
        ``pending_actions`` keyword is ignored in favour of the live count.

        Raises
        ------
        TypeError
            If a keyword is not a :class:`SyncStatus` field.
        """
        with self._lock:
            if self._pending_count is not None:
                changes["pending_actions"] = self._pending_count()
            self._status = dataclasses.replace(self._status, **changes)
            status = self._status
            self._listeners.emit(status)
        return status

    def refresh(self) -> SyncStatus:
        """Re-read the live sources and broadcast the snapshot."""
        return self.update()

    def subscriber_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        """Drop every subscriber."""
        self._listeners.clear()


__all__ = ["StatusCallback", "StatusPublisher", "SyncStatus"]
