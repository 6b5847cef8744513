#!/usr/bin/env python3
"""Example: Retries, backoff and dropped actions (propertyhub-sync)

Shows how failed actions are retried on later passes, how exponential
backoff defers them, and how an action that keeps failing is dropped and
reported once it reaches ``max_retries``.

Usage:
    python examples/02_retry_and_backoff.py

Requirements:
    pip install propertyhub-sync
"""
from __future__ import annotations

import datetime

from propertyhub_sync import (
    ActionKind,
    EngineConfig,
    ExponentialBackoffPolicy,
    NetworkMonitor,
    OfflineSyncEngine,
    RecordingErrorReporter,
)
from propertyhub_sync.testing import AlwaysFail, SimulatedRemote


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now


def main() -> None:
    clock = ManualClock()
    reporter = RecordingErrorReporter()
    engine = OfflineSyncEngine(
        SimulatedRemote(fault_policy=AlwaysFail(resources={"property"})),
        EngineConfig(database_path=":memory:", max_retries=3),
        network=NetworkMonitor(initial_online=True),
        reporter=reporter,
        retry_policy=ExponentialBackoffPolicy(base_seconds=30, jitter=0),
        clock=clock,
    )

    with engine:
        engine.enqueue(ActionKind.CREATE, "booking", {"id": "b1"})
        engine.enqueue(ActionKind.UPDATE, "property", {"id": "p1", "price": 95_000})

        for attempt in range(1, 6):
            report = engine.request_sync()
            assert report is not None
            print(
                f"Pass {attempt} at {clock.now:%H:%M:%S}: "
                f"succeeded={report.succeeded} retried={report.retried} "
                f"skipped={report.skipped} dropped={report.dropped}"
            )
            for action in engine.queue.snapshot():
                print(f"  pending {action.kind.value} {action.resource} "
                      f"retries={action.retry_count} next={action.next_attempt_at}")
            clock.now += datetime.timedelta(seconds=45)

        print(f"\nLast error: {engine.status().last_error}")
        print(f"Reported: {[event.code.value for event in reporter.events]}")
        print(f"Totals: {engine.orchestrator.stats()}")


if __name__ == "__main__":
    main()
