"""Queue reconciliation: remote contract, retry policies and the orchestrator."""
from __future__ import annotations

from propertyhub_sync.sync.orchestrator import LAST_SYNC_KEY, PassReport, SyncOrchestrator
from propertyhub_sync.sync.policy import (
    BackoffStrategy,
    ExponentialBackoffPolicy,
    FixedRetryPolicy,
    RetryPolicy,
    build_retry_policy,
)
from propertyhub_sync.sync.remote import ExecutionResult, RemoteExecutor

__all__ = [
    "BackoffStrategy",
    "ExecutionResult",
    "ExponentialBackoffPolicy",
    "FixedRetryPolicy",
    "LAST_SYNC_KEY",
    "PassReport",
    "RemoteExecutor",
    "RetryPolicy",
    "SyncOrchestrator",
    "build_retry_policy",
]
