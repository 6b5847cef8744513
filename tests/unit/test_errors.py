"""Tests for the error taxonomy and reporters."""
from __future__ import annotations

import logging

import pytest

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


class TestExceptions:
    @pytest.mark.parametrize(
        ("exc_type", "code"),
        [
            (StorageInitError, ErrorCode.STORAGE_OPEN_FAILED),
            (StorageError, ErrorCode.FATAL_STORAGE_ERROR),
            (EngineNotInitializedError, ErrorCode.ENGINE_NOT_INITIALIZED),
        ],
    )
    def test_default_codes(self, exc_type: type[SyncEngineError], code: ErrorCode) -> None:
        exc = exc_type("boom")
        assert isinstance(exc, SyncEngineError)
        assert exc.code == code
        assert str(exc) == "boom"

    def test_explicit_code_wins(self) -> None:
        exc = StorageError("boom", code=ErrorCode.OFFLINE_SYNC_FAILED)
        assert exc.code == ErrorCode.OFFLINE_SYNC_FAILED


class TestReporters:
    def test_base_reporter_is_abstract(self) -> None:
        with pytest.raises(NotImplementedError):
            ErrorReporter().report(ErrorEvent(ErrorCode.OFFLINE_SYNC_FAILED, "x"))

    def test_recording_reporter_forwards(self) -> None:
        downstream = RecordingErrorReporter()
        recorder = RecordingErrorReporter(forward_to=downstream)
        recorder.report(ErrorEvent(ErrorCode.OFFLINE_SYNC_FAILED, "x"))
        assert recorder.codes() == [ErrorCode.OFFLINE_SYNC_FAILED]
        assert downstream.codes() == [ErrorCode.OFFLINE_SYNC_FAILED]
        recorder.clear()
        assert recorder.events == []

    def test_logging_reporter_maps_severity(self, caplog: pytest.LogCaptureFixture) -> None:
        reporter = LoggingErrorReporter(logging.getLogger("propertyhub_sync.test"))
        with caplog.at_level(logging.INFO, logger="propertyhub_sync.test"):
            reporter.report(
                ErrorEvent(
                    ErrorCode.OFFLINE_MANAGER_INIT_FAILED,
                    "cannot open",
                    severity=ErrorSeverity.HIGH,
                    category=ErrorCategory.DATABASE,
                )
            )
        (record,) = caplog.records
        assert record.levelno == logging.ERROR
        assert "OFFLINE_MANAGER_INIT_FAILED" in record.getMessage()
        assert "category=database" in record.getMessage()
