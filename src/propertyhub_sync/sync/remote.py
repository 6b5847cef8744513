"""Contract for the remote service that confirms queued mutations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from propertyhub_sync.queue.mutations import QueuedAction


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one remote execution.

    Attributes
    ----------
    ok:
        True if the remote confirmed the mutation.
    reason:
        Failure reason when ``ok`` is False.
    record:
        The remote's authoritative version of the affected record, if it
        returned one. Cached locally in place of the action payload.
    """

    ok: bool
    reason: str | None = None
    record: dict[str, Any] | None = None

    @classmethod
    def success(cls, record: dict[str, Any] | None = None) -> "ExecutionResult":
        return cls(ok=True, record=record)

    @classmethod
    def failure(cls, reason: str) -> "ExecutionResult":
        return cls(ok=False, reason=reason)


class RemoteExecutor:
    """Protocol-like base for remote collaborators.

    Subclass this and implement :meth:`execute` to call the real API.
    Raising from :meth:`execute` (a timeout, a connection error) counts
    as a failed attempt, exactly like returning
    :meth:`ExecutionResult.failure`.

    The engine retries with the same ``action.id``; remotes that must not
    apply a mutation twice should deduplicate on it.
    """

    def execute(self, action: QueuedAction) -> ExecutionResult:
        """Perform *action* against the remote service."""
        raise NotImplementedError


__all__ = ["ExecutionResult", "RemoteExecutor"]
