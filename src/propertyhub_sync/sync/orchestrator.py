"""Sync orchestrator: drains the mutation queue against the remote.

State machine
-------------
IDLE    : no pass running; ``run_pass`` may start one.
SYNCING : a pass is running; further ``run_pass`` calls return None.

The ``sync_in_progress`` flag is the only state bit and is tested and set
under a lock, so at most one pass runs per orchestrator.

Pass
----
1. Return None if already syncing or offline.
2. Mark syncing, clear ``last_error``.
3. Snapshot the queue; actions enqueued later wait for the next pass.
4. Execute each due action in FIFO order. Success removes it; failure
   increments ``retry_count`` and either keeps it or drops it (reported).
   A failing action never aborts the rest of the pass.
5. Persist residual + late arrivals in one atomic write.
6. Record ``last_sync_time``.
7. Back to idle.
"""
from __future__ import annotations

import datetime
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from propertyhub_sync.errors import (
    ErrorCategory,
    ErrorCode,
    ErrorEvent,
    ErrorReporter,
    ErrorSeverity,
    LoggingErrorReporter,
    StorageError,
)
from propertyhub_sync.queue.mutations import (
    ActionKind,
    MutationQueue,
    QueuedAction,
    describe_drop,
)
from propertyhub_sync.status.publisher import StatusPublisher
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.store.schema import USER_DATA_COLLECTION, resolve_collection
from propertyhub_sync.sync.policy import FixedRetryPolicy, RetryPolicy
from propertyhub_sync.sync.remote import ExecutionResult, RemoteExecutor

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "lastSync"
LAST_ERROR_KEY = "lastError"

Clock = Callable[[], datetime.datetime]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class PassReport:
    """Summary of one completed pass.

    Attributes
    ----------
    started_at:
        UTC time the pass started.
    succeeded:
        Actions confirmed by the remote and removed.
    retried:
        Actions that failed and were kept for a later pass.
    dropped:
        Actions that exhausted ``max_retries`` during this pass.
    skipped:
        Actions not yet due under the retry policy.
    carried_over:
        Actions enqueued while the pass was running.
    duration_seconds:
        Wall-clock duration of the pass.
    error:
        Message of a whole-pass failure, or None.
    """

    started_at: datetime.datetime = field(default_factory=_utcnow)
    succeeded: int = 0
    retried: int = 0
    dropped: int = 0
    skipped: int = 0
    carried_over: int = 0
    duration_seconds: float = 0.0
    error: str | None = None

    @property
    def processed(self) -> int:
        """Number of actions sent to the remote in this pass."""
        return self.succeeded + self.retried + self.dropped

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncOrchestrator:
    """Single-flight, FIFO drainer of a :class:`MutationQueue`.

    Parameters
    ----------
    queue:
        The mutation queue to drain.
    remote:
        The :class:`RemoteExecutor` that confirms each action.
    publisher:
        Receives status updates at pass start, after each action, and at
        pass end.
    is_online:
        Returns the current connectivity; a pass never starts offline.
    retry_policy:
        Schedules failed actions. Default: :class:`FixedRetryPolicy`.
    reporter:
        Receives ``OFFLINE_SYNC_FAILED`` for whole-pass failures.
    store:
        If given, the completion time of each pass is persisted under
        ``userData["lastSync"]`` and its outcome under
        ``userData["lastError"]``. Confirmed records are cached in it.
    clock:
        Returns the current UTC time; injectable for tests.
    history_size:
        Number of :class:`PassReport` entries retained.
    """

    def __init__(
        self,
        queue: MutationQueue,
        remote: RemoteExecutor,
        publisher: StatusPublisher,
        *,
        is_online: Callable[[], bool],
        retry_policy: RetryPolicy | None = None,
        reporter: ErrorReporter | None = None,
        store: PersistentStore | None = None,
        clock: Clock = _utcnow,
        history_size: int = 50,
    ) -> None:
        self._queue = queue
        self._remote = remote
        self._publisher = publisher
        self._is_online = is_online
        self._retry_policy = retry_policy or FixedRetryPolicy()
        self._reporter = reporter or LoggingErrorReporter()
        self._store = store
        self._clock = clock
        self._history: deque[PassReport] = deque(maxlen=history_size)
        self._state_lock = threading.Lock()
        self._syncing = False

    @property
    def syncing(self) -> bool:
        with self._state_lock:
            return self._syncing

    # ------------------------------------------------------------------
    # Pass execution
    # ------------------------------------------------------------------

    def run_pass(self) -> PassReport | None:
        """Run one pass over a snapshot of the queue.

        Returns
        -------
        PassReport | None
            The pass summary, or None if the call was a no-op because a
            pass was already running or the device is offline.
        """
        with self._state_lock:
            if self._syncing or not self._is_online():
                return None
            self._syncing = True

        report = PassReport(started_at=self._clock())
        started = time.monotonic()
        self._publisher.update(sync_in_progress=True, last_error=None)
        try:
            self._drain(report)
        except Exception as exc:
            report.error = f"Offline sync failed: {exc}"
            logger.exception("Sync pass failed")
            self._reporter.report(
                ErrorEvent(
                    code=ErrorCode.OFFLINE_SYNC_FAILED,
                    message=report.error,
                    severity=ErrorSeverity.MEDIUM,
                    category=ErrorCategory.SYNC,
                    context={"succeeded": report.succeeded, "dropped": report.dropped},
                )
            )
            self._publisher.update(last_error=report.error)
            try:
                self._persist_outcome(None, report.error)
            except StorageError:
                logger.exception("Could not persist the failed pass outcome")
        finally:
            report.duration_seconds = time.monotonic() - started
            self._history.append(report)
            with self._state_lock:
                self._syncing = False
            self._publisher.update(sync_in_progress=False, pending_actions=len(self._queue))

        logger.info(
            "Sync pass finished: %d succeeded, %d retried, %d dropped, %d skipped in %.3fs",
            report.succeeded,
            report.retried,
            report.dropped,
            report.skipped,
            report.duration_seconds,
        )
        return report

    def run_in_background(self) -> threading.Thread:
        """Start :meth:`run_pass` on a daemon thread (fire-and-forget)."""
        thread = threading.Thread(
            target=self.run_pass, name="propertyhub-sync-pass", daemon=True
        )
        thread.start()
        return thread

    # ------------------------------------------------------------------
    # History / statistics
    # ------------------------------------------------------------------

    def history(self) -> list[PassReport]:
        """Return the retained pass reports, oldest first."""
        return list(self._history)

    def stats(self) -> dict[str, int]:
        """Return action counts summed over the retained history."""
        reports = list(self._history)
        return {
            "passes": len(reports),
            "failed_passes": sum(1 for r in reports if not r.ok),
            "succeeded": sum(r.succeeded for r in reports),
            "retried": sum(r.retried for r in reports),
            "dropped": sum(r.dropped for r in reports),
            "skipped": sum(r.skipped for r in reports),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _drain(self, report: PassReport) -> None:
        snapshot = self._queue.snapshot()
        planned = {action.id for action in snapshot}
        residual: list[QueuedAction] = []
        last_error: str | None = None

        for action in snapshot:
            now = self._clock()
            if not action.is_due(now):
                residual.append(action)
                report.skipped += 1
                continue

            result = self._execute(action)
            if result.ok:
                self._queue.remove(action.id)
                report.succeeded += 1
                self._cache_confirmed(action, result)
            else:
                kept = self._queue.requeue_with_increment(
                    action.id,
                    reason=result.reason,
                    next_attempt_at=self._retry_policy.next_attempt_at(
                        action.retry_count + 1, now
                    ),
                )
                if kept is None:
                    report.dropped += 1
                    last_error = describe_drop(action)
                else:
                    residual.append(kept)
                    report.retried += 1
            self._publisher.update(pending_actions=len(self._queue), last_error=last_error)

        with self._queue.locked():
            late = [action for action in self._queue.snapshot() if action.id not in planned]
            self._queue.replace(residual + late)
        report.carried_over = len(late)

        finished = self._clock()
        self._persist_outcome(finished, last_error)
        self._publisher.update(
            last_sync_time=finished,
            pending_actions=len(self._queue),
            last_error=last_error,
        )

    def _persist_outcome(
        self, finished: datetime.datetime | None, last_error: str | None
    ) -> None:
        """Store ``lastSync`` (when *finished* is given) and ``lastError``."""
        if self._store is None:
            return
        stamp = self._clock().isoformat()
        records = [{"key": LAST_ERROR_KEY, "data": last_error, "timestamp": stamp}]
        if finished is not None:
            records.append(
                {"key": LAST_SYNC_KEY, "data": finished.isoformat(), "timestamp": stamp}
            )
        self._store.put_many(USER_DATA_COLLECTION, records)

    def _cache_confirmed(self, action: QueuedAction, result: ExecutionResult) -> None:
        try:
            self._apply_confirmed(action, result)
        except (ValueError, StorageError) as exc:
            # The remote already applied the action; only the local copy is stale.
            logger.warning("Could not cache confirmed action %s: %s", action.id, exc)
            self._reporter.report(
                ErrorEvent(
                    code=ErrorCode.CACHE_WRITE_FAILED,
                    message=(
                        f"Confirmed {action.kind.value} {action.resource} "
                        f"could not be cached locally: {exc}"
                    ),
                    severity=ErrorSeverity.LOW,
                    category=ErrorCategory.DATABASE,
                    context={"action_id": action.id},
                )
            )

    def _apply_confirmed(self, action: QueuedAction, result: ExecutionResult) -> None:
        """Mirror a confirmed mutation into the local collection it targets."""
        if self._store is None:
            return
        collection = resolve_collection(action.resource, self._store.schemas)
        if collection is None:
            return
        key_field = self._store.schemas[collection].key_field
        record = result.record if result.record is not None else action.payload
        if not isinstance(record, dict) or record.get(key_field) is None:
            return
        if action.kind == ActionKind.DELETE:
            self._store.delete(collection, record[key_field])
        else:
            self._store.put(collection, record)

    def _execute(self, action: QueuedAction) -> ExecutionResult:
        logger.debug(
            "Executing %s %s (%s, attempt %d)",
            action.kind.value,
            action.resource,
            action.id,
            action.retry_count + 1,
        )
        try:
            result = self._remote.execute(action)
        except Exception as exc:
            logger.warning("Remote execution of %s raised: %s", action.id, exc)
            return ExecutionResult.failure(f"{type(exc).__name__}: {exc}")
        if not result.ok:
            logger.warning("Remote rejected %s: %s", action.id, result.reason)
        return result


__all__ = ["LAST_ERROR_KEY", "LAST_SYNC_KEY", "PassReport", "SyncOrchestrator"]
