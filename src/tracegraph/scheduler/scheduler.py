"""Scheduler: linearizes an optimized NodeTable into trace instructions.

This module implements the static scheduling algorithm that:
1. Orders nodes topologically, breaking ties by insertion order.
2. Computes buffer liveness (producer -> last consumer).
3. Assigns arena offsets so that dead buffers are reused.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field

from tracegraph.config import ArenaConfig
from tracegraph.ir.errors import TraceGenerationError, UnresolvedShapeError
from tracegraph.ir.shape import is_resolved
from tracegraph.passes.base import NodeTable
from tracegraph.scheduler.memory import ArenaOutOfMemoryError, BufferArena
from tracegraph.scheduler.ops import Instruction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Schedule:
    """Output of one scheduler run."""

    instructions: tuple[Instruction, ...]
    offsets: dict[int, int]
    buffers_reused: int
    naive_bytes: int
    peak_bytes: int
    arena_bytes: int
    final_live_bytes: int


@dataclass
class Scheduler:
    """Static scheduler that turns a node table into instructions with arena offsets.

    The scheduling algorithm:
    1. Kahn's algorithm with a min-heap on node id. Ids grow with insertion
       order, so ties always resolve to the node recorded first.
    2. last_use[n] = index of the last instruction reading n. Outputs are
       live until the end and never released.
    3. For each instruction, allocate the result buffer *first*, then release
       operands whose last use is this instruction. A result therefore never
       shares storage with anything it reads or anything still pending.

    Attributes:
        config: Arena configuration.
    """

    config: ArenaConfig = field(default_factory=ArenaConfig)

    def topological_order(self, table: NodeTable) -> list[int]:
        indegree: dict[int, int] = {}
        for node in table:
            for operand in node.operands:
                if operand not in table:
                    raise TraceGenerationError(
                        f"Node {node.label()} references missing node {operand}"
                    )
            indegree[node.id] = len(set(node.operands))

        users = table.users()
        ready = [nid for nid, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)
        order: list[int] = []
        while ready:
            nid = heapq.heappop(ready)
            order.append(nid)
            for user in users[nid]:
                indegree[user] -= 1
                if indegree[user] == 0:
                    heapq.heappush(ready, user)

        if len(order) != len(table):
            stuck = sorted(nid for nid, deg in indegree.items() if deg > 0)
            raise TraceGenerationError(
                f"Graph {table.name!r} is not a DAG: nodes {stuck[:10]} are part of or behind a cycle"
            )
        return order

    def compute_liveness(self, table: NodeTable, order: list[int]) -> dict[int, int]:
        """node id -> index of the last instruction that reads it.

        A node nobody reads dies at its own instruction. Outputs map to
        len(order), one past the end.
        """
        position = {nid: i for i, nid in enumerate(order)}
        last_use = dict(position)
        for nid in order:
            for operand in table.nodes[nid].operands:
                last_use[operand] = max(last_use[operand], position[nid])
        for nid in table.live_outputs():
            last_use[nid] = len(order)
        return last_use

    def run(self, table: NodeTable) -> Schedule:
        """Schedule every node of `table`.

        Raises:
            UnresolvedShapeError: If a node has no concrete shape.
            TraceGenerationError: If ordering or buffer assignment fails.
        """
        order = self.topological_order(table)
        last_use = self.compute_liveness(table, order)

        arena = BufferArena(self.config)
        offsets: dict[int, int] = {}
        instructions: list[Instruction] = []
        reused = 0
        naive = 0
        alignment = self.config.alignment

        for index, nid in enumerate(order):
            node = table.nodes[nid]
            if not is_resolved(node.shape):
                raise UnresolvedShapeError(
                    f"Node {node.label()} ({node.kind.value}) has unresolved shape {node.shape!r}"
                )

            size = max(node.nbytes, node.dtype.itemsize)
            extent_before = arena.extent_bytes
            try:
                offset = arena.alloc(size, tag=node.label())
            except ArenaOutOfMemoryError as e:
                raise TraceGenerationError(
                    f"Cannot place buffer for {node.label()} while scheduling {table.name!r}:\n{e}\n\n"
                    f"Arena state:\n{arena.format_state()}"
                ) from e
            offsets[nid] = offset
            if offset < extent_before:
                reused += 1
            naive += (size + alignment - 1) & ~(alignment - 1)

            dying = [o for o in dict.fromkeys(node.operands) if last_use[o] == index]
            if last_use[nid] == index:
                dying.append(nid)
            for dead in dying:
                arena.free(offsets[dead])

            instructions.append(Instruction(
                index=index,
                node=nid,
                kind=node.kind,
                operands=node.operands,
                operand_offsets=tuple(offsets[o] for o in node.operands),
                offset=offset,
                nbytes=node.nbytes,
                shape=node.shape,
                params=node.params,
                frees=tuple(sorted(dying)),
                name=node.label(),
            ))

        logger.debug(
            f"{table.name}: scheduled {len(instructions)} instructions, "
            f"peak {arena.peak_bytes}B, arena {arena.extent_bytes}B, {reused} reused"
        )
        return Schedule(
            instructions=tuple(instructions),
            offsets=offsets,
            buffers_reused=reused,
            naive_bytes=naive,
            peak_bytes=arena.peak_bytes,
            arena_bytes=arena.extent_bytes,
            final_live_bytes=arena.live_bytes,
        )
