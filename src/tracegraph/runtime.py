"""Reference runtime: executes traces with the numpy kernels.

Buffers are numpy views into one flat byte arena at the offsets the
scheduler assigned, so executing a trace exercises its buffer reuse exactly
as planned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

import numpy as np

from tracegraph.ir.dtypes import float32
from tracegraph.ir.errors import CrossGraphReferenceError
from tracegraph.ir.op import OpKind
from tracegraph.ir.shape import Shape
from tracegraph.ir.tensor import GraphTensor
from tracegraph.kernels import evaluate

if TYPE_CHECKING:
    from tracegraph.trace import Trace

__all__ = ["Runtime", "RuntimeStats"]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeStats:
    """Counters accumulated across executions."""

    traces_executed: int = 0
    instructions_executed: int = 0
    arena_bytes_reserved: int = 0


class Runtime:
    """Executes a Trace on concrete input values.

    Example:
        >>> g = Graph()
        >>> a = g.tensor((3,))
        >>> c = (a.exp().sqrt() + a).retrieve()
        >>> trace = g.gen_trace()
        >>> out = Runtime().execute(trace, {a: [0.0, 1.0, 2.0]})
        >>> out[c.id]
    """

    def __init__(self) -> None:
        self._stats = RuntimeStats()

    @property
    def stats(self) -> RuntimeStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = RuntimeStats()

    def execute(self, trace: Trace, inputs: Mapping[GraphTensor | int, Any]) -> dict[int, np.ndarray]:
        """Run every instruction of `trace` and return its outputs.

        Args:
            trace: Trace produced by `Graph.gen_trace`.
            inputs: Value per input, keyed by input handle or input node id.

        Returns:
            {original output node id: array}. Arrays are copies and do not
            alias the runtime's arena.

        Raises:
            CrossGraphReferenceError: A handle from another graph was passed.
            ValueError: An input is missing, unknown or has the wrong shape.
        """
        feeds = self._bind_inputs(trace, inputs)

        arena = np.zeros(max(trace.arena_bytes, 1), dtype=np.uint8)
        shapes: dict[int, Shape] = {}
        offsets: dict[int, int] = {}

        for ins in trace.instructions:
            out = self._view(arena, ins.offset, ins.shape)
            if ins.kind is OpKind.INPUT:
                value = feeds[ins.node]
            elif ins.kind is OpKind.CONSTANT:
                value = np.asarray(ins.attrs["value"], dtype=float32.numpy).reshape(ins.shape)
            else:
                args = [
                    self._view(arena, off, shapes[o])
                    for o, off in zip(ins.operands, ins.operand_offsets)
                ]
                value = evaluate(ins.kind, ins.params, args)
            out[...] = value
            shapes[ins.node] = ins.shape
            offsets[ins.node] = ins.offset

        self._stats.traces_executed += 1
        self._stats.instructions_executed += len(trace.instructions)
        self._stats.arena_bytes_reserved += arena.nbytes
        logger.debug(f"Executed trace {trace.name!r}: {len(trace.instructions)} instructions")

        return {
            orig: self._view(arena, offsets[cur], shapes[cur]).copy()
            for orig, cur in trace.outputs
        }

    def _bind_inputs(self, trace: Trace, inputs: Mapping[GraphTensor | int, Any]) -> dict[int, np.ndarray]:
        expected = dict(trace.input_shapes)
        feeds: dict[int, np.ndarray] = {}

        for key, value in inputs.items():
            if isinstance(key, GraphTensor):
                if key.graph.id != trace.graph_id:
                    raise CrossGraphReferenceError(
                        f"Input {key.id} belongs to graph {key.graph.name!r}, "
                        f"not the graph trace {trace.name!r} was generated from"
                    )
                nid = key.id
            elif isinstance(key, (int, np.integer)) and not isinstance(key, bool):
                nid = int(key)
            else:
                raise ValueError(f"Inputs must be keyed by GraphTensor or node id, got {key!r}")

            if nid not in expected:
                raise ValueError(f"Node {nid} is not an input of graph {trace.name!r}")

            arr = np.asarray(value, dtype=float32.numpy)
            if arr.shape != expected[nid]:
                raise ValueError(
                    f"Shape mismatch for input {nid}: expected {expected[nid]}, got {arr.shape}"
                )
            feeds[nid] = arr

        missing = [nid for nid in trace.inputs if nid not in feeds]
        if missing:
            raise ValueError(f"Missing values for inputs {missing} of trace {trace.name!r}")
        return feeds

    @staticmethod
    def _view(arena: np.ndarray, offset: int, shape: Shape) -> np.ndarray:
        return np.ndarray(shape, dtype=float32.numpy, buffer=arena, offset=offset)
