#!/usr/bin/env python3
"""Smallest end-to-end demo: record, compile and run sqrt(exp(a)) + a.

Run with:
    python -m examples.exp_sqrt_add
"""

import json
import logging

import numpy as np

from tracegraph import Graph, TraceConfig


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    g = Graph(name="exp_sqrt_add")
    a = g.tensor((3,), name="a")
    b = a.exp()
    c = b.sqrt()
    d = (c + a).retrieve()

    print("=" * 70)
    print(g.summary())

    print("\n[1] Unoptimized trace")
    raw = g.gen_trace(TraceConfig(optimize=False))
    print(raw.summary())

    print("\n[2] Optimized trace")
    trace = g.gen_trace()
    print(trace.summary())

    x = np.array([0.0, 1.0, 2.0], dtype=np.float32)
    out = trace.run({a: x})[d.id]
    expected = np.sqrt(np.exp(x)) + x
    print(f"\n  Result:   {out}")
    print(f"  Expected: {expected}")
    print(f"  {'✓ PASS' if np.allclose(out, expected) else '✗ FAIL'}")

    print("\n[3] Exported trace")
    print(json.dumps(trace.export(), indent=2))


if __name__ == "__main__":
    main()
