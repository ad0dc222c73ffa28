"""Trace IR: the linear instruction sequence produced by the scheduler.

Every instruction computes one node into a buffer at a fixed arena offset.
Instructions are "flat": list order is execution order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tracegraph.ir.op import OpKind
from tracegraph.ir.shape import Shape

if TYPE_CHECKING:
    from collections.abc import Sequence


# =============================================================================
# Instruction IR
# =============================================================================


@dataclass(frozen=True, slots=True)
class Instruction:
    """Compute one node into its buffer.

    Attributes:
        index: Position in the trace.
        node: Id of the (optimized) node this instruction computes.
        kind: Operation kind.
        operands: Node ids read by this instruction, in operand order.
        operand_offsets: Arena offsets of those operands' buffers.
        offset: Arena offset of the result buffer.
        nbytes: Size of the result in bytes (before alignment).
        shape: Result shape.
        params: Operation parameters (axis, program, constant value, ...).
        frees: Node ids whose buffers are released after this instruction.
        name: Display label of the node.
    """

    index: int
    node: int
    kind: OpKind
    operands: tuple[int, ...]
    operand_offsets: tuple[int, ...]
    offset: int
    nbytes: int
    shape: Shape
    params: tuple[tuple[str, Any], ...] = ()
    frees: tuple[int, ...] = ()
    name: str = ""

    @property
    def attrs(self) -> dict[str, Any]:
        return dict(self.params)

    def __repr__(self) -> str:
        srcs = ", ".join(f"n{o}@0x{off:04X}" for o, off in zip(self.operands, self.operand_offsets))
        free = f" free[{', '.join(f'n{f}' for f in self.frees)}]" if self.frees else ""
        return (
            f"{self.index:>4}: {self.kind.value.upper()} n{self.node} {self.shape} "
            f"-> @0x{self.offset:04X} ({self.nbytes}B) <- [{srcs}]{free}"
        )


# =============================================================================
# Trace Statistics
# =============================================================================


@dataclass(frozen=True, slots=True)
class TraceStats:
    """Statistics collected during trace generation.

    Attributes:
        nodes_recorded: Nodes in the source graph.
        nodes_scheduled: Instructions emitted.
        passes: Rewrite count per optimizer pass.
        buffers_allocated: Result buffers carved from the arena.
        buffers_reused: Allocations that landed on previously released storage.
        naive_bytes: Sum of all buffer sizes, i.e. memory without reuse.
        peak_bytes: High-water mark of simultaneously live bytes.
        arena_bytes: Arena extent a runtime must reserve.
        final_live_bytes: Bytes still allocated at the end (the outputs).
    """

    nodes_recorded: int = 0
    nodes_scheduled: int = 0
    passes: tuple[tuple[str, int], ...] = ()
    buffers_allocated: int = 0
    buffers_reused: int = 0
    naive_bytes: int = 0
    peak_bytes: int = 0
    arena_bytes: int = 0
    final_live_bytes: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "nodes_recorded": self.nodes_recorded,
            "nodes_scheduled": self.nodes_scheduled,
            "passes": dict(self.passes),
            "buffers_allocated": self.buffers_allocated,
            "buffers_reused": self.buffers_reused,
            "naive_bytes": self.naive_bytes,
            "peak_bytes": self.peak_bytes,
            "arena_bytes": self.arena_bytes,
            "final_live_bytes": self.final_live_bytes,
        }


# =============================================================================
# Pretty Printing Utilities
# =============================================================================


def format_instructions(
    instructions: Sequence[Instruction],
    *,
    max_lines: int | None = None,
    indent: str = "  ",
) -> str:
    """Format instructions as a human-readable listing.

    Example output:
           0: INPUT n0 (3,) -> @0x0000 (12B) <- []
           1: FUSED n3 (3,) -> @0x0040 (12B) <- [n0@0x0000] free[n0]
    """
    lines: list[str] = []
    shown = instructions[:max_lines] if max_lines else instructions

    for ins in shown:
        lines.append(f"{indent}{ins!r}")

    if max_lines and len(instructions) > max_lines:
        lines.append(f"{indent}... ({len(instructions) - max_lines} more instructions)")

    return "\n".join(lines)


def format_stats(stats: TraceStats, *, indent: str = "  ") -> str:
    reuse_pct = 0.0
    if stats.buffers_allocated > 0:
        reuse_pct = 100.0 * stats.buffers_reused / stats.buffers_allocated
    saved = stats.naive_bytes - stats.arena_bytes

    lines = [
        f"{indent}Nodes recorded:      {stats.nodes_recorded}",
        f"{indent}Instructions:        {stats.nodes_scheduled}",
    ]
    for name, count in stats.passes:
        lines.append(f"{indent}  pass {name:<16} {count} rewrite(s)")
    lines.extend([
        f"{indent}Buffers allocated:   {stats.buffers_allocated}",
        f"{indent}Buffers reused:      {stats.buffers_reused} ({reuse_pct:.1f}%)",
        f"{indent}Peak live bytes:     {stats.peak_bytes:,}",
        f"{indent}Arena bytes:         {stats.arena_bytes:,} (naive {stats.naive_bytes:,}, saved {saved:,})",
        f"{indent}Final live bytes:    {stats.final_live_bytes:,}",
    ])
    return "\n".join(lines)
