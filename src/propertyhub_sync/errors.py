"""Error taxonomy and reporting for the offline sync engine.

Three classes of failure exist:

Fatal
    The storage engine cannot be opened. Raised from
    :meth:`~propertyhub_sync.engine.OfflineSyncEngine.initialize`; the
    engine refuses to run without durability.
Recoverable-by-retry
    A single remote execution failed. Absorbed by the orchestrator
    through ``retry_count`` / ``max_retries`` and never raised to callers.
Reported-non-fatal
    An action exhausted its retries, or a whole pass failed. Recorded in
    ``SyncStatus.last_error`` and emitted to an :class:`ErrorReporter`.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Codes and classification
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    """Stable identifiers attached to raised and reported errors."""

    OFFLINE_MANAGER_INIT_FAILED = "OFFLINE_MANAGER_INIT_FAILED"
    STORAGE_OPEN_FAILED = "STORAGE_OPEN_FAILED"
    FATAL_STORAGE_ERROR = "FATAL_STORAGE_ERROR"
    ENGINE_NOT_INITIALIZED = "ENGINE_NOT_INITIALIZED"
    SYNC_ACTION_MAX_RETRIES = "SYNC_ACTION_MAX_RETRIES"
    OFFLINE_SYNC_FAILED = "OFFLINE_SYNC_FAILED"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"


class ErrorSeverity(str, Enum):
    """How urgently a reported error needs attention."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Subsystem an error originated from."""

    DATABASE = "database"
    SYNC = "sync"
    NETWORK = "network"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SyncEngineError(Exception):
    """Base class for every exception raised by the sync engine.

    Parameters
    ----------
    message:
        Human-readable description.
    code:
        The :class:`ErrorCode` classifying this failure.
    """

    default_code: ErrorCode = ErrorCode.FATAL_STORAGE_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code


class StorageInitError(SyncEngineError):
    """The underlying storage engine could not be opened or migrated."""

    default_code = ErrorCode.STORAGE_OPEN_FAILED


class StorageError(SyncEngineError):
    """A read or write against the opened storage engine failed."""

    default_code = ErrorCode.FATAL_STORAGE_ERROR


class EngineNotInitializedError(SyncEngineError):
    """An operation was attempted before ``initialize()`` succeeded."""

    default_code = ErrorCode.ENGINE_NOT_INITIALIZED


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ErrorEvent:
    """A single reported error.

    Attributes
    ----------
    code:
        Classifying :class:`ErrorCode`.
    message:
        Human-readable description.
    severity:
        :class:`ErrorSeverity` of the event.
    category:
        :class:`ErrorCategory` of the originating subsystem.
    context:
        Free-form diagnostic key/value pairs (action id, retry count...).
    timestamp:
        UTC time the event was created.
    """

    code: ErrorCode
    message: str
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    category: ErrorCategory = ErrorCategory.UNKNOWN
    context: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


class ErrorReporter:
    """Protocol-like base for error-reporting collaborators.

    Subclass this and implement :meth:`report` to forward events to an
    external tracker.
    """

    def report(self, event: ErrorEvent) -> None:
        """Deliver *event* to the reporting backend."""
        raise NotImplementedError


_SEVERITY_LEVELS: dict[ErrorSeverity, int] = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class LoggingErrorReporter(ErrorReporter):
    """Default reporter: writes each event to the ``logging`` system."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def report(self, event: ErrorEvent) -> None:
        self._logger.log(
            _SEVERITY_LEVELS[event.severity],
            "[%s] %s (category=%s context=%s)",
            event.code.value,
            event.message,
            event.category.value,
            event.context,
        )


class RecordingErrorReporter(ErrorReporter):
    """Keeps reported events in memory, optionally forwarding them.

    Parameters
    ----------
    forward_to:
        Another reporter that also receives every event.
    """

    def __init__(self, forward_to: ErrorReporter | None = None) -> None:
        self._forward_to = forward_to
        self._events: list[ErrorEvent] = []

    def report(self, event: ErrorEvent) -> None:
        self._events.append(event)
        if self._forward_to is not None:
            self._forward_to.report(event)

    @property
    def events(self) -> list[ErrorEvent]:
        """Return a copy of all events reported so far."""
        return list(self._events)

    def codes(self) -> list[ErrorCode]:
        """Return the codes of all reported events, oldest first."""
        return [event.code for event in self._events]

    def clear(self) -> None:
        self._events.clear()


__all__ = [
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
]
