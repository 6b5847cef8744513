"""propertyhub-sync: offline-first synchronisation engine for PropertyHub clients.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import propertyhub_sync
>>> propertyhub_sync.__version__
'0.1.0'

Engine
------
>>> from propertyhub_sync import OfflineSyncEngine, EngineConfig, ActionKind
>>> from propertyhub_sync.testing import SimulatedRemote
>>> engine = OfflineSyncEngine(SimulatedRemote(), EngineConfig(database_path=":memory:"))
>>> engine.initialize()
>>> engine.enqueue(ActionKind.CREATE, "booking", {"id": "b1"})
1

Storage
-------
>>> from propertyhub_sync import PersistentStore, CollectionSchema

Queue and sync
--------------
>>> from propertyhub_sync import MutationQueue, QueuedAction, SyncOrchestrator, RemoteExecutor

Status
------
>>> from propertyhub_sync import StatusPublisher, SyncStatus
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
from propertyhub_sync.errors import (
    EngineNotInitializedError,
    ErrorCategory,
    ErrorCode,
    ErrorEvent,
    ErrorReporter,
    ErrorSeverity,
    LoggingErrorReporter,
    RecordingErrorReporter,
    StorageError,
    StorageInitError,
    SyncEngineError,
)

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.store.schema import DEFAULT_SCHEMAS, CollectionSchema

# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------
from propertyhub_sync.queue.mutations import ActionKind, MutationQueue, QueuedAction

# ---------------------------------------------------------------------------
# Network and status
# ---------------------------------------------------------------------------
from propertyhub_sync.network.monitor import NetworkMonitor, tcp_probe
from propertyhub_sync.observers import Subscription
from propertyhub_sync.status.publisher import StatusPublisher, SyncStatus

# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------
from propertyhub_sync.sync.orchestrator import PassReport, SyncOrchestrator
from propertyhub_sync.sync.policy import (
    BackoffStrategy,
    ExponentialBackoffPolicy,
    FixedRetryPolicy,
    RetryPolicy,
)
from propertyhub_sync.sync.remote import ExecutionResult, RemoteExecutor

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
from propertyhub_sync.config import ConnectivityConfig, EngineConfig, load_config
from propertyhub_sync.engine import OfflineSyncEngine

__all__ = [
    # Version
    "__version__",
    # Errors
    "EngineNotInitializedError",
    "ErrorCategory",
    "ErrorCode",
    "ErrorEvent",
    "ErrorReporter",
    "ErrorSeverity",
    "LoggingErrorReporter",
    "RecordingErrorReporter",
    "StorageError",
    "StorageInitError",
    "SyncEngineError",
    # Storage
    "CollectionSchema",
    "DEFAULT_SCHEMAS",
    "PersistentStore",
    # Queue
    "ActionKind",
    "MutationQueue",
    "QueuedAction",
    # Network and status
    "NetworkMonitor",
    "StatusPublisher",
    "Subscription",
    "SyncStatus",
    "tcp_probe",
    # Sync
    "BackoffStrategy",
    "ExecutionResult",
    "ExponentialBackoffPolicy",
    "FixedRetryPolicy",
    "PassReport",
    "RemoteExecutor",
    "RetryPolicy",
    "SyncOrchestrator",
    # Engine
    "ConnectivityConfig",
    "EngineConfig",
    "OfflineSyncEngine",
    "load_config",
]
