"""Trace generation: optimize a snapshot of a graph, then schedule it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from tracegraph.config import TraceConfig
from tracegraph.ir.op import FusedStep, OpKind
from tracegraph.ir.shape import Shape
from tracegraph.passes.base import NodeTable
from tracegraph.passes.pipeline import Optimizer
from tracegraph.scheduler.ops import Instruction, TraceStats, format_instructions, format_stats
from tracegraph.scheduler.scheduler import Scheduler

if TYPE_CHECKING:
    import numpy as np

    from tracegraph.ir.graph import Graph
    from tracegraph.ir.tensor import GraphTensor
    from tracegraph.runtime import Runtime

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1


@dataclass(frozen=True, slots=True)
class Trace:
    """A finalized, immutable instruction sequence derived from one graph.

    A trace keeps only the identity token of its graph, never the graph
    itself; it stays valid (and safe to share between threads) however the
    graph grows afterwards.

    Attributes:
        name: Name of the source graph.
        graph_id: Identity token of the source graph.
        instructions: Instructions in execution order.
        inputs: Input node ids the trace reads; each must be fed to `run`.
        input_shapes: (node id, shape) for every input of the source graph.
        outputs: (original output node id, node id computing it) pairs.
        arena_bytes: Bytes a runtime must reserve for all buffers.
        stats: Trace generation statistics.
    """

    name: str
    graph_id: int
    instructions: tuple[Instruction, ...]
    inputs: tuple[int, ...]
    input_shapes: tuple[tuple[int, Shape], ...]
    outputs: tuple[tuple[int, int], ...]
    arena_bytes: int
    stats: TraceStats

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    @property
    def output_ids(self) -> tuple[int, ...]:
        return tuple(orig for orig, _ in self.outputs)

    def run(
        self,
        inputs: Mapping[GraphTensor | int, Any],
        *,
        runtime: Runtime | None = None,
    ) -> dict[int, np.ndarray]:
        """Execute the trace. Returns {output node id: value}."""
        from tracegraph.runtime import Runtime

        return (runtime or Runtime()).execute(self, inputs)

    def export(self) -> dict[str, Any]:
        """Plain, JSON-friendly description of the trace for an external prover."""
        return {
            "format_version": EXPORT_FORMAT_VERSION,
            "name": self.name,
            "arena_bytes": self.arena_bytes,
            "inputs": [
                {"node": nid, "shape": list(shape)}
                for nid, shape in self.input_shapes
                if nid in self.inputs
            ],
            "outputs": [{"node": orig, "source": cur} for orig, cur in self.outputs],
            "instructions": [_export_instruction(ins) for ins in self.instructions],
        }

    def summary(self, *, max_lines: int | None = None) -> str:
        return "\n".join([
            f"Trace(name={self.name!r}, instructions={len(self.instructions)}, "
            f"arena={self.arena_bytes}B)",
            format_instructions(self.instructions, max_lines=max_lines),
            format_stats(self.stats),
        ])


def _export_params(params: tuple[tuple[str, Any], ...]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in params:
        if key == "program":
            out[key] = [_export_step(step) for step in value]
        elif isinstance(value, tuple):
            out[key] = list(value)
        else:
            out[key] = value
    return out


def _export_step(step: FusedStep) -> dict[str, Any]:
    return {
        "op": step.kind.value,
        "args": [[src, i] for src, i in step.args],
        "params": _export_params(step.params),
    }


def _export_instruction(ins: Instruction) -> dict[str, Any]:
    return {
        "index": ins.index,
        "node": ins.node,
        "op": ins.kind.value,
        "operands": list(ins.operands),
        "operand_offsets": list(ins.operand_offsets),
        "offset": ins.offset,
        "nbytes": ins.nbytes,
        "shape": list(ins.shape),
        "params": _export_params(ins.params),
        "frees": list(ins.frees),
    }


def generate_trace(graph: Graph, config: TraceConfig | None = None) -> Trace:
    """Compile `graph` into a Trace.

    The optimizer works on a NodeTable snapshot, so the graph is left as it
    was, whether or not generation succeeds.

    Raises:
        UnresolvedShapeError: An optimizer pass broke a shape invariant.
        TraceGenerationError: Ordering or buffer assignment failed.
    """
    config = config or TraceConfig()
    table = NodeTable.from_graph(graph)
    if not table.outputs:
        logger.warning(f"Graph {graph.name!r} has no outputs; the trace will be empty")

    counts: dict[str, int] = {}
    if config.optimize:
        counts = Optimizer(config.optimizer).run(table)
    else:
        table.validate()

    schedule = Scheduler(config.arena).run(table)
    instructions = schedule.instructions

    stats = TraceStats(
        nodes_recorded=len(graph),
        nodes_scheduled=len(instructions),
        passes=tuple(counts.items()),
        buffers_allocated=len(instructions),
        buffers_reused=schedule.buffers_reused,
        naive_bytes=schedule.naive_bytes,
        peak_bytes=schedule.peak_bytes,
        arena_bytes=schedule.arena_bytes,
        final_live_bytes=schedule.final_live_bytes,
    )
    trace = Trace(
        name=graph.name,
        graph_id=graph.id,
        instructions=instructions,
        inputs=tuple(ins.node for ins in instructions if ins.kind is OpKind.INPUT),
        input_shapes=tuple((nid, graph.node(nid).shape) for nid in table.inputs),
        outputs=tuple(sorted(table.outputs.items())),
        arena_bytes=schedule.arena_bytes,
        stats=stats,
    )
    logger.info(
        f"Generated trace for {graph.name!r}: {len(graph)} nodes -> "
        f"{len(instructions)} instructions, arena {schedule.arena_bytes}B"
    )
    return trace
