"""Offline sync engine: the consumer-facing facade.

Wires the persistent store, mutation queue, network monitor, orchestrator
and status publisher together. Construct one engine per database file and
pass it to whatever needs it; there is no module-level instance.

Example
-------
::

    engine = OfflineSyncEngine(MyApiRemote(), EngineConfig(database_path="offline.db"))
    engine.initialize()
    unsubscribe = engine.subscribe(lambda status: print(status.pending_actions))
    engine.enqueue(ActionKind.CREATE, "booking", {"id": "b1", "propertyId": "p1"})
    engine.set_online(True)      # starts a background pass
    unsubscribe()
    engine.close()
"""
from __future__ import annotations

import datetime
import logging
import threading
import time
from collections.abc import Iterable
from typing import Any

from propertyhub_sync.config import EngineConfig
from propertyhub_sync.errors import (
    EngineNotInitializedError,
    ErrorCategory,
    ErrorCode,
    ErrorEvent,
    ErrorReporter,
    ErrorSeverity,
    LoggingErrorReporter,
    SyncEngineError,
)
from propertyhub_sync.network.monitor import NetworkMonitor, tcp_probe
from propertyhub_sync.observers import Subscription
from propertyhub_sync.queue.mutations import ActionKind, MutationQueue
from propertyhub_sync.status.publisher import StatusCallback, StatusPublisher, SyncStatus
from propertyhub_sync.store.persistent import PersistentStore, Record
from propertyhub_sync.store.schema import USER_DATA_COLLECTION
from propertyhub_sync.sync.orchestrator import (
    LAST_ERROR_KEY,
    LAST_SYNC_KEY,
    Clock,
    PassReport,
    SyncOrchestrator,
)
from propertyhub_sync.sync.policy import RetryPolicy
from propertyhub_sync.sync.remote import RemoteExecutor

logger = logging.getLogger(__name__)

_CLOSE_JOIN_TIMEOUT = 5.0


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class OfflineSyncEngine:
    """Store-and-forward cache with a durable mutation queue.

    Parameters
    ----------
    remote:
        The :class:`RemoteExecutor` confirming queued actions.
    config:
        :class:`EngineConfig`. Default: ``EngineConfig()``.
    store:
        Pre-built :class:`PersistentStore`; default opens
        ``config.database_path``.
    network:
        Pre-built :class:`NetworkMonitor`; default probes
        ``config.connectivity`` when a probe host is configured and
        otherwise waits for :meth:`set_online`.
    reporter:
        :class:`ErrorReporter` for reported errors.
    retry_policy:
        Overrides the policy built from ``config``.
    clock:
        Current UTC time, injectable for tests.
    """

    def __init__(
        self,
        remote: RemoteExecutor,
        config: EngineConfig | None = None,
        *,
        store: PersistentStore | None = None,
        network: NetworkMonitor | None = None,
        reporter: ErrorReporter | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._config = config or EngineConfig()
        self._reporter = reporter or LoggingErrorReporter()
        self._store = store or PersistentStore(self._config.database_path)
        self._network = network or self._build_network(self._config)
        self._queue = MutationQueue(
            self._store,
            max_retries=self._config.max_retries,
            reporter=self._reporter,
            allowed_resources=self._config.allowed_resources,
        )
        self._publisher = StatusPublisher(
            SyncStatus(is_online=self._network.is_online()),
            pending_count=lambda: len(self._queue),
        )
        self._orchestrator = SyncOrchestrator(
            self._queue,
            remote,
            self._publisher,
            is_online=self._network.is_online,
            retry_policy=retry_policy or self._config.build_retry_policy(),
            reporter=self._reporter,
            store=self._store,
            clock=clock,
        )
        self._network_subscription: Subscription | None = None
        self._pass_threads: list[threading.Thread] = []
        self._pass_threads_lock = threading.Lock()
        self._initialized = False

    @staticmethod
    def _build_network(config: EngineConfig) -> NetworkMonitor:
        connectivity = config.connectivity
        probe = None
        if connectivity.probe_host:
            probe = tcp_probe(
                connectivity.probe_host, connectivity.probe_port, connectivity.probe_timeout
            )
        return NetworkMonitor(probe=probe, check_interval=connectivity.check_interval)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def store(self) -> PersistentStore:
        return self._store

    @property
    def queue(self) -> MutationQueue:
        return self._queue

    @property
    def network(self) -> NetworkMonitor:
        return self._network

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return self._orchestrator

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Open storage, restore the queue, start watching the network.

        If the device is online afterwards, one pass runs before this
        method returns.

        Raises
        ------
        StorageInitError
            If the storage engine cannot be opened. The engine does not
            start; an ``OFFLINE_MANAGER_INIT_FAILED`` event is reported.
        """
        if self._initialized:
            return
        try:
            self._store.open()
            pending = self._queue.load()
            last_sync = self._load_last_sync()
            last_error = self._load_last_error()
        except SyncEngineError as exc:
            self._store.close()
            self._reporter.report(
                ErrorEvent(
                    code=ErrorCode.OFFLINE_MANAGER_INIT_FAILED,
                    message=f"Failed to initialize offline manager: {exc}",
                    severity=ErrorSeverity.HIGH,
                    category=ErrorCategory.DATABASE,
                    context={"database_path": self._store.path, "cause": exc.code.value},
                )
            )
            raise

        if self._network.has_probe and not self._network.running:
            self._network.check()
        self._network_subscription = self._network.on_transition(self._on_network_transition)
        if self._network.has_probe:
            self._network.start()

        self._initialized = True
        self._publisher.update(
            is_online=self._network.is_online(),
            last_sync_time=last_sync,
            last_error=last_error,
        )
        logger.info("Offline sync engine initialized (%d pending actions)", pending)

        if self._network.is_online():
            self._orchestrator.run_pass()

    def close(self) -> None:
        """Stop background work, drop subscribers and close storage.

        A pass already running on a background thread is given up to
        five seconds to finish before storage is closed.
        """
        if self._network_subscription is not None:
            self._network_subscription.unsubscribe()
            self._network_subscription = None
        self._network.stop()
        self._join_pass_threads()
        self._publisher.clear()
        self._store.close()
        self._initialized = False

    def __enter__(self) -> "OfflineSyncEngine":
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def enqueue(self, kind: ActionKind | str, resource: str, payload: Any = None) -> int:
        """Queue a mutation for the remote.

        The action is durable when this returns. Never raises because of
        remote failures; those are retried in the background.

        Returns
        -------
        int
            Number of pending actions.
        """
        self._require_initialized()
        pending = self._queue.enqueue(kind, resource, payload)
        self._publisher.refresh()
        if self._config.sync_on_enqueue and self._network.is_online():
            self._start_background_pass()
        return pending

    def store_records(self, collection: str, records: Iterable[Record]) -> int:
        """Cache remote-fetched *records* in *collection* (upsert)."""
        self._require_initialized()
        return self._store.put_many(collection, records)

    def delete_record(self, collection: str, key: object) -> None:
        """Evict one cached record."""
        self._require_initialized()
        self._store.delete(collection, key)

    def store_user_data(self, key: str, data: Any) -> None:
        """Persist a user-scoped value (preferences, session hints...)."""
        self._require_initialized()
        self._store.put(
            USER_DATA_COLLECTION,
            {"key": key, "data": data, "timestamp": _utcnow().isoformat()},
        )

    def get_user_data(self, key: str) -> Any:
        """Return the value stored by :meth:`store_user_data`, or None."""
        self._require_initialized()
        record = self._store.get(USER_DATA_COLLECTION, key)
        return record.get("data") if record else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, key: object) -> Record | None:
        self._require_initialized()
        return self._store.get(collection, key)

    def get_all(self, collection: str) -> list[Record]:
        self._require_initialized()
        return self._store.get_all(collection)

    def get_all_by_index(self, collection: str, index_name: str, value: object) -> list[Record]:
        self._require_initialized()
        return self._store.get_all_by_index(collection, index_name, value)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> int:
        """Evict every domain collection. The queue and user data survive.

        Returns
        -------
        int
            Number of records removed.
        """
        self._require_initialized()
        removed = 0
        for schema in self._store.schemas.values():
            if schema.evictable:
                removed += self._store.clear(schema.name)
        logger.info("Offline cache cleared (%d records)", removed)
        return removed

    def cache_size(self) -> int:
        """Return the number of records across all collections."""
        self._require_initialized()
        return sum(self._store.count(name) for name in self._store.schemas)

    # ------------------------------------------------------------------
    # Sync and status
    # ------------------------------------------------------------------

    def request_sync(self, wait: bool = True) -> PassReport | None:
        """Manually trigger a pass.

        Parameters
        ----------
        wait:
            Run the pass on the calling thread and return its report.
            When False, the pass starts on a background thread and None
            is returned.

        Returns
        -------
        PassReport | None
            None when not waiting, or when the request was a no-op
            (already syncing or offline).
        """
        self._require_initialized()
        if not wait:
            self._start_background_pass()
            return None
        return self._orchestrator.run_pass()

    def set_online(self, online: bool) -> None:
        """Feed a platform connectivity signal to the network monitor."""
        self._network.set_online(online)

    def status(self) -> SyncStatus:
        return self._publisher.current()

    def subscribe(self, callback: StatusCallback) -> Subscription:
        """Receive the current :class:`SyncStatus` now and on every change."""
        return self._publisher.subscribe(callback)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_network_transition(self, online: bool) -> None:
        self._publisher.update(is_online=online)
        if online and self._initialized:
            self._start_background_pass()

    def _start_background_pass(self) -> None:
        thread = self._orchestrator.run_in_background()
        with self._pass_threads_lock:
            self._pass_threads = [t for t in self._pass_threads if t.is_alive()]
            self._pass_threads.append(thread)

    def _join_pass_threads(self) -> None:
        with self._pass_threads_lock:
            threads, self._pass_threads = self._pass_threads, []
        deadline = time.monotonic() + _CLOSE_JOIN_TIMEOUT
        for thread in threads:
            if thread is threading.current_thread():
                continue
            thread.join(max(0.0, deadline - time.monotonic()))
            if thread.is_alive():
                logger.warning(
                    "Background sync pass still running after %.1fs; closing storage anyway",
                    _CLOSE_JOIN_TIMEOUT,
                )

    def _load_last_sync(self) -> datetime.datetime | None:
        record = self._store.get(USER_DATA_COLLECTION, LAST_SYNC_KEY)
        if not record or not record.get("data"):
            return None
        try:
            return datetime.datetime.fromisoformat(record["data"])
        except (TypeError, ValueError):
            logger.warning("Ignoring unreadable lastSync value %r", record["data"])
            return None

    def _load_last_error(self) -> str | None:
        record = self._store.get(USER_DATA_COLLECTION, LAST_ERROR_KEY)
        if not record or not isinstance(record.get("data"), str):
            return None
        return record["data"]

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise EngineNotInitializedError(
                "OfflineSyncEngine.initialize() must succeed before this call"
            )


__all__ = ["OfflineSyncEngine"]
