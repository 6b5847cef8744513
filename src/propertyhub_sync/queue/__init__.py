"""Durable mutation queue."""
from __future__ import annotations

from propertyhub_sync.queue.mutations import (
    DEFAULT_MAX_RETRIES,
    ActionKind,
    MutationQueue,
    QueuedAction,
    describe_drop,
)

__all__ = [
    "ActionKind",
    "DEFAULT_MAX_RETRIES",
    "MutationQueue",
    "QueuedAction",
    "describe_drop",
]
