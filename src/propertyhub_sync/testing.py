"""Test doubles for the remote collaborator.

:class:`SimulatedRemote` stands in for the PropertyHub API. Failures are
injected only through a :class:`FaultPolicy`, never by the engine itself.

Example
-------
::

    remote = SimulatedRemote(fault_policy=FailFirst(2))
    engine = OfflineSyncEngine(remote, EngineConfig(database_path=":memory:"))
"""
from __future__ import annotations

import random
import threading
import time
from collections import defaultdict

from propertyhub_sync.queue.mutations import QueuedAction
from propertyhub_sync.sync.remote import ExecutionResult, RemoteExecutor


# ---------------------------------------------------------------------------
# Fault policies
# ---------------------------------------------------------------------------


class FaultPolicy:
    """Decides whether a simulated execution fails."""

    def should_fail(self, action: QueuedAction, attempt: int) -> bool:
        """Return True to fail *action* on its *attempt*-th execution (1-based)."""
        raise NotImplementedError


class NoFaults(FaultPolicy):
    def should_fail(self, action: QueuedAction, attempt: int) -> bool:
        return False


class AlwaysFail(FaultPolicy):
    """Fail every execution, optionally only for some resources."""

    def __init__(self, resources: set[str] | None = None) -> None:
        self._resources = resources

    def should_fail(self, action: QueuedAction, attempt: int) -> bool:
        return self._resources is None or action.resource in self._resources


class FailFirst(FaultPolicy):
    """Fail the first *count* attempts of every action, then succeed."""

    def __init__(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        self._count = count

    def should_fail(self, action: QueuedAction, attempt: int) -> bool:
        return attempt <= self._count


class RandomFaults(FaultPolicy):
    """Fail each execution with probability *rate*; seedable."""

    def __init__(self, rate: float, seed: int | None = None) -> None:
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"rate must be within [0, 1], got {rate}")
        self._rate = rate
        self._rng = random.Random(seed)

    def should_fail(self, action: QueuedAction, attempt: int) -> bool:
        return self._rng.random() < self._rate


# ---------------------------------------------------------------------------
# Simulated remote
# ---------------------------------------------------------------------------


class SimulatedRemote(RemoteExecutor):
    """In-process remote that records executions.

    Parameters
    ----------
    fault_policy:
        Decides which executions fail. Default: :class:`NoFaults`.
    latency_seconds:
        Sleep applied to every execution.
    gate:
        If given, every execution blocks until the event is set; lets
        tests hold a pass open.
    """

    def __init__(
        self,
        fault_policy: FaultPolicy | None = None,
        latency_seconds: float = 0.0,
        gate: threading.Event | None = None,
    ) -> None:
        self._fault_policy = fault_policy or NoFaults()
        self._latency = latency_seconds
        self._gate = gate
        self._attempts: defaultdict[str, int] = defaultdict(int)
        self._executed: list[QueuedAction] = []
        self._confirmed: list[QueuedAction] = []
        self._lock = threading.Lock()
        self.started = threading.Event()

    @property
    def executed(self) -> list[QueuedAction]:
        """Every action passed to :meth:`execute`, in call order."""
        with self._lock:
            return list(self._executed)

    @property
    def confirmed(self) -> list[QueuedAction]:
        """Actions whose execution succeeded, in call order."""
        with self._lock:
            return list(self._confirmed)

    def attempts(self, action_id: str) -> int:
        with self._lock:
            return self._attempts[action_id]

    def execute(self, action: QueuedAction) -> ExecutionResult:
        self.started.set()
        if self._gate is not None:
            self._gate.wait()
        if self._latency:
            time.sleep(self._latency)
        with self._lock:
            self._attempts[action.id] += 1
            attempt = self._attempts[action.id]
            self._executed.append(action)
        if self._fault_policy.should_fail(action, attempt):
            return ExecutionResult.failure(
                f"Simulated sync failure for {action.kind.value} {action.resource}"
            )
        with self._lock:
            self._confirmed.append(action)
        return ExecutionResult.success()


__all__ = [
    "AlwaysFail",
    "FailFirst",
    "FaultPolicy",
    "NoFaults",
    "RandomFaults",
    "SimulatedRemote",
]
