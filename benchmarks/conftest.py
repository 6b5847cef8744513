"""Shared bootstrap for propertyhub-sync benchmarks."""
from __future__ import annotations

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).parent.parent
_SRC = _REPO_ROOT / "src"
_BENCHMARKS = _REPO_ROOT / "benchmarks"

for _path in [str(_SRC), str(_BENCHMARKS)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

from propertyhub_sync.queue.mutations import ActionKind, MutationQueue
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.sync.orchestrator import SyncOrchestrator

__all__ = [
    "ActionKind",
    "MutationQueue",
    "PersistentStore",
    "SyncOrchestrator",
]
