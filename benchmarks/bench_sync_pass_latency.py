"""Benchmark: Sync pass latency: per-pass p50/p99.

Fills the queue with a fixed batch, drains it with one pass against an
always-succeeding simulated remote, and records the pass duration.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from propertyhub_sync.queue.mutations import ActionKind, MutationQueue
from propertyhub_sync.status.publisher import StatusPublisher
from propertyhub_sync.store.persistent import PersistentStore
from propertyhub_sync.sync.orchestrator import SyncOrchestrator
from propertyhub_sync.testing import SimulatedRemote

_WARMUP: int = 3
_ITERATIONS: int = 30
_BATCH: int = 100


def bench_sync_pass_latency() -> dict[str, object]:
    """Benchmark SyncOrchestrator.run_pass() over a batch of actions.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, p99_latency_ms, memory_peak_mb.
    """
    store = PersistentStore()
    store.open()
    queue = MutationQueue(store)
    orchestrator = SyncOrchestrator(
        queue, SimulatedRemote(), StatusPublisher(), is_online=lambda: True, store=store
    )

    def fill() -> None:
        for n in range(_BATCH):
            queue.enqueue(ActionKind.UPDATE, "booking", {"id": f"b{n}", "status": "confirmed"})

    for _ in range(_WARMUP):
        fill()
        orchestrator.run_pass()

    latencies_ms: list[float] = []
    for _ in range(_ITERATIONS):
        fill()
        t0 = time.perf_counter()
        orchestrator.run_pass()
        latencies_ms.append((time.perf_counter() - t0) * 1000)
    store.close()

    sorted_lats = sorted(latencies_ms)
    n = len(sorted_lats)
    total = sum(latencies_ms) / 1000

    result: dict[str, object] = {
        "operation": "sync_pass_latency",
        "iterations": _ITERATIONS,
        "batch_size": _BATCH,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS * _BATCH / total, 1),
        "avg_latency_ms": round(sum(latencies_ms) / n, 4),
        "p99_latency_ms": round(sorted_lats[min(int(n * 0.99), n - 1)], 4),
        "memory_peak_mb": 0.0,
    }
    print(
        f"[bench_sync_pass_latency] {result['operation']}: "
        f"p99={result['p99_latency_ms']:.4f}ms  "
        f"mean={result['avg_latency_ms']:.4f}ms per {_BATCH}-action pass"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_sync_pass_latency()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "sync_pass_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
