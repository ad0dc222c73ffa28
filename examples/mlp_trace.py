#!/usr/bin/env python3
"""MLP demo: build a 3-layer MLP lazily, compile it and check it against NumPy.

Pipeline:
1. Build graph (only records nodes, nothing runs)
2. gen_trace: constant folding, CSE, DCE, fusion, then scheduling
3. Execute the trace with the reference Runtime

Run with:
    python -m examples.mlp_trace
"""

import numpy as np

from tracegraph import Graph, Runtime
from tracegraph.scheduler import format_stats


def build_mlp_graph():
    """3-layer MLP: 128x128 -> 64 -> 32 -> 32, ReLU between layers."""
    g = Graph(name="mlp_3layer")

    x = g.tensor((128, 128), name="x")
    w1 = g.tensor((128, 64), name="w1")
    w2 = g.tensor((64, 32), name="w2")
    w3 = g.tensor((32, 32), name="w3")

    a1 = (x @ w1).relu()
    a2 = (a1 @ w2).relu()
    out = (a2 @ w3).retrieve()
    return g, (x, w1, w2, w3), out


def numpy_reference(x, w1, w2, w3):
    h1 = np.maximum(0, x @ w1)
    h2 = np.maximum(0, h1 @ w2)
    return h2 @ w3


def main():
    print("=" * 70)
    print("MLP Trace Demo")
    print("=" * 70)

    g, (x, w1, w2, w3), out = build_mlp_graph()
    print(f"\n[1] Recorded graph: {len(g)} nodes, outputs {g.outputs}")

    trace = g.gen_trace()
    print(f"\n[2] Trace: {len(trace)} instructions, arena {trace.arena_bytes:,} bytes")
    print(format_stats(trace.stats))

    rng = np.random.default_rng(42)
    feeds = {
        x: rng.standard_normal((128, 128)).astype(np.float32) * 0.1,
        w1: rng.standard_normal((128, 64)).astype(np.float32) * 0.1,
        w2: rng.standard_normal((64, 32)).astype(np.float32) * 0.1,
        w3: rng.standard_normal((32, 32)).astype(np.float32) * 0.1,
    }

    runtime = Runtime()
    result = trace.run(feeds, runtime=runtime)[out.id]
    expected = numpy_reference(*(feeds[t] for t in (x, w1, w2, w3)))

    max_diff = np.max(np.abs(result - expected))
    print("\n[3] Correctness")
    print(f"    Output shape: {result.shape}")
    print(f"    Max absolute difference: {max_diff:.2e}")
    ok = np.allclose(result, expected, rtol=1e-4, atol=1e-5)
    print(f"    {'✓ PASS' if ok else '✗ FAIL'}")
    print(f"    Instructions executed: {runtime.stats.instructions_executed}")


if __name__ == "__main__":
    main()
