#!/usr/bin/env python3
"""Example: Quickstart (propertyhub-sync)

Minimal working example: queue bookings while offline, watch the status,
then reconnect and let one pass drain the queue.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install propertyhub-sync
"""
from __future__ import annotations

import threading

import propertyhub_sync
from propertyhub_sync import (
    ActionKind,
    EngineConfig,
    NetworkMonitor,
    OfflineSyncEngine,
    SyncStatus,
)
from propertyhub_sync.testing import SimulatedRemote


def main() -> None:
    print(f"propertyhub-sync version: {propertyhub_sync.__version__}")

    # Step 1: Start an engine while the device is offline
    engine = OfflineSyncEngine(
        SimulatedRemote(latency_seconds=0.05),
        EngineConfig(database_path=":memory:"),
        network=NetworkMonitor(initial_online=False),
    )
    engine.initialize()

    finished = threading.Event()

    def on_status(status: SyncStatus) -> None:
        print(
            f"  status: online={status.is_online} pending={status.pending_actions} "
            f"syncing={status.sync_in_progress}"
        )
        if status.last_sync_time is not None and not status.sync_in_progress:
            finished.set()

    unsubscribe = engine.subscribe(on_status)

    # Step 2: Queue three bookings; nothing reaches the remote yet
    print("\nQueueing bookings offline:")
    for n in range(3):
        engine.enqueue(ActionKind.CREATE, "booking", {"id": f"b{n}", "propertyId": "p1"})

    # Step 3: Connectivity returns; a pass starts in the background
    print("\nGoing online:")
    engine.set_online(True)
    finished.wait(10)

    status = engine.status()
    print(f"\nPending after sync: {status.pending_actions}")
    print(f"Last sync: {status.last_sync_time}")
    print(f"Cached bookings: {[b['id'] for b in engine.get_all('bookings')]}")

    unsubscribe()
    engine.close()


if __name__ == "__main__":
    main()
