#!/usr/bin/env python3
"""
End-to-end MLP benchmark.

Measures trace generation (optimizer + scheduler) and reference execution
for the 3-layer MLP, with and without the optimizer.

Usage:
    python benchmarks/mlp_e2e.py
"""

import sys
import time
from pathlib import Path

import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tracegraph import Graph, Runtime, TraceConfig


# =============================================================================
# Configuration
# =============================================================================

WARMUP_ITERS = 3
BENCH_ITERS = 20
COMPILE_ITERS = 20


def build_mlp_graph():
    g = Graph(name="mlp_3layer")
    x = g.tensor((128, 128), name="x")
    w1 = g.tensor((128, 64), name="w1")
    w2 = g.tensor((64, 32), name="w2")
    w3 = g.tensor((32, 32), name="w3")
    a1 = (x @ w1).relu()
    a2 = (a1 @ w2).relu()
    (a2 @ w3).retrieve()
    return g, (x, w1, w2, w3)


def time_compile(graph: Graph, config: TraceConfig, iters: int) -> tuple:
    times = []
    trace = None
    for _ in range(iters):
        start = time.perf_counter()
        trace = graph.gen_trace(config)
        times.append(time.perf_counter() - start)
    return trace, np.array(times) * 1000


def time_execute(trace, feeds: dict, iters: int, warmup: int) -> np.ndarray:
    runtime = Runtime()
    for _ in range(warmup):
        trace.run(feeds, runtime=runtime)

    times = []
    for _ in range(iters):
        start = time.perf_counter()
        trace.run(feeds, runtime=runtime)
        times.append(time.perf_counter() - start)
    return np.array(times) * 1000


def main():
    print("=" * 70)
    print("End-to-End MLP Benchmark")
    print("=" * 70)

    graph, (x, w1, w2, w3) = build_mlp_graph()
    print(f"\nRecorded nodes: {len(graph)}")

    rng = np.random.default_rng(42)
    feeds = {
        x: rng.standard_normal((128, 128)).astype(np.float32) * 0.1,
        w1: rng.standard_normal((128, 64)).astype(np.float32) * 0.1,
        w2: rng.standard_normal((64, 32)).astype(np.float32) * 0.1,
        w3: rng.standard_normal((32, 32)).astype(np.float32) * 0.1,
    }

    for label, config in [("optimized", TraceConfig()), ("unoptimized", TraceConfig(optimize=False))]:
        trace, compile_ms = time_compile(graph, config, COMPILE_ITERS)
        exec_ms = time_execute(trace, feeds, BENCH_ITERS, WARMUP_ITERS)
        stats = trace.stats

        print("\n" + "-" * 70)
        print(f"{label}")
        print("-" * 70)
        print(f"  Instructions:     {len(trace)}")
        print(f"  Arena bytes:      {trace.arena_bytes:,} (naive {stats.naive_bytes:,})")
        print(f"  Buffers reused:   {stats.buffers_reused}/{stats.buffers_allocated}")
        print(f"  gen_trace:        {np.mean(compile_ms):.3f} ms (p50 {np.percentile(compile_ms, 50):.3f})")
        print(f"  execute:          {np.mean(exec_ms):.3f} ms (p50 {np.percentile(exec_ms, 50):.3f})")


if __name__ == "__main__":
    main()
