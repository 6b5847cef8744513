"""Benchmark: Durable enqueue throughput: actions per second.

Measures how many MutationQueue.enqueue() calls complete per second
against a file-backed store. Every call commits before returning, so this
is bounded by SQLite's synchronous write path.
"""
from __future__ import annotations

import json
import sys
import tempfile
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from propertyhub_sync.queue.mutations import ActionKind, MutationQueue
from propertyhub_sync.store.persistent import PersistentStore

_ITERATIONS: int = 1_000


def bench_enqueue_throughput() -> dict[str, object]:
    """Benchmark MutationQueue.enqueue() throughput.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, p99_latency_ms, memory_peak_mb.
    """
    with tempfile.TemporaryDirectory() as tmp:
        with PersistentStore(Path(tmp) / "bench.db") as store:
            queue = MutationQueue(store)
            start = time.perf_counter()
            for n in range(_ITERATIONS):
                queue.enqueue(ActionKind.CREATE, "booking", {"id": f"b{n}", "propertyId": "p1"})
            total = time.perf_counter() - start

    result: dict[str, object] = {
        "operation": "enqueue_throughput",
        "iterations": _ITERATIONS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(total / _ITERATIONS * 1000, 4),
        "p99_latency_ms": 0.0,
        "memory_peak_mb": 0.0,
    }
    print(
        f"[bench_enqueue_throughput] {result['operation']}: "
        f"{result['ops_per_second']:,.0f} ops/sec  "
        f"avg {result['avg_latency_ms']:.4f} ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_enqueue_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "enqueue_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
