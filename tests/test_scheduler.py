"""Scheduler tests: BufferArena and Scheduler verification.

Tests cover:
1. BufferArena basics (alloc/free, alignment, peak and extent tracking)
2. Out-of-memory diagnostics
3. Topological ordering and DAG checks
4. Liveness-based buffer reuse
"""

import pytest

from tracegraph.config import ArenaConfig, TraceConfig
from tracegraph.ir import Graph, Node, OpKind
from tracegraph.ir.errors import TraceGenerationError, UnresolvedShapeError
from tracegraph.passes import NodeTable
from tracegraph.scheduler import ArenaOutOfMemoryError, BufferArena, Scheduler

BLOCK = 256


def _table(nodes: list[Node], outputs: dict[int, int]) -> NodeTable:
    return NodeTable(name="manual", graph_id=0, nodes={n.id: n for n in nodes}, outputs=outputs)


# =============================================================================
# 1. BufferArena Basics
# =============================================================================


class TestBufferArenaBasics:
    """Test basic allocator functionality."""

    def test_alloc_free_roundtrip(self):
        arena = BufferArena(ArenaConfig(total_bytes=64 * 1024))

        addr = arena.alloc(BLOCK, tag="test_block")
        assert addr == 0
        assert arena.live_bytes == BLOCK

        arena.free(addr)
        assert arena.live_bytes == 0
        assert arena.extent_bytes == BLOCK

    def test_alignment_respected(self):
        """Allocations should be aligned to config.alignment."""
        arena = BufferArena(ArenaConfig(total_bytes=64 * 1024, alignment=128))

        addrs = [arena.alloc(100, tag=f"block_{i}") for i in range(5)]

        for addr in addrs:
            assert addr % 128 == 0, f"Address 0x{addr:04X} not 128-byte aligned"
        assert arena.extent_bytes == 5 * 128

    def test_peak_bytes_tracked(self):
        arena = BufferArena(ArenaConfig(total_bytes=64 * 1024))

        addr1 = arena.alloc(BLOCK, tag="t1")
        addr2 = arena.alloc(BLOCK, tag="t2")
        addr3 = arena.alloc(BLOCK, tag="t3")
        assert arena.peak_bytes == 3 * BLOCK

        arena.free(addr2)
        assert arena.live_bytes == 2 * BLOCK
        assert arena.peak_bytes == 3 * BLOCK

        arena.free(addr1)
        arena.free(addr3)
        assert arena.live_bytes == 0
        assert arena.peak_bytes == 3 * BLOCK

    def test_freed_space_is_reused_first_fit(self):
        arena = BufferArena(ArenaConfig(total_bytes=64 * 1024))

        first = arena.alloc(BLOCK, tag="first")
        arena.alloc(BLOCK, tag="second")
        arena.free(first)

        assert arena.alloc(BLOCK // 2, tag="third") == first
        assert arena.extent_bytes == 2 * BLOCK

    def test_free_nonexistent_raises(self):
        arena = BufferArena(ArenaConfig(total_bytes=64 * 1024))

        with pytest.raises(KeyError):
            arena.free(0x1234)

    def test_reset_clears_allocations(self):
        """Reset should free all allocations but preserve peak."""
        arena = BufferArena(ArenaConfig(total_bytes=64 * 1024))

        arena.alloc(BLOCK, tag="t1")
        arena.alloc(BLOCK, tag="t2")
        original_peak = arena.peak_bytes

        arena.reset()

        assert arena.live_bytes == 0
        assert arena.peak_bytes == original_peak
        assert arena.get_allocations() == []

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            ArenaConfig(total_bytes=0)
        with pytest.raises(ValueError):
            ArenaConfig(alignment=48)


# =============================================================================
# 2. Out-of-memory diagnostics
# =============================================================================


class TestOOMDebugInfo:
    """OOM errors should carry enough context to debug a failed schedule."""

    def test_oom_raises_with_message(self):
        arena = BufferArena(ArenaConfig(total_bytes=BLOCK))
        arena.alloc(BLOCK, tag="first_block")

        with pytest.raises(ArenaOutOfMemoryError) as exc_info:
            arena.alloc(BLOCK, tag="second_block")

        error_msg = str(exc_info.value)
        assert "cannot allocate" in error_msg.lower()
        assert "second_block" in error_msg

    def test_oom_shows_capacity_and_allocations(self):
        arena = BufferArena(ArenaConfig(total_bytes=2 * BLOCK))
        arena.alloc(BLOCK, tag="exp1")
        arena.alloc(BLOCK, tag="sqrt1")

        with pytest.raises(ArenaOutOfMemoryError) as exc_info:
            arena.alloc(BLOCK, tag="add1")

        error_msg = str(exc_info.value)
        assert "512" in error_msg
        assert "live" in error_msg.lower()
        assert "exp1" in error_msg
        assert "sqrt1" in error_msg


# =============================================================================
# 3. Ordering
# =============================================================================


class TestTopologicalOrder:
    """Kahn ordering with ties broken by insertion order."""

    def test_order_follows_insertion_for_independent_branches(self):
        g = Graph(name="branches")
        a = g.tensor((4,))
        b = g.tensor((4,))
        left = a.exp()
        right = b.sin()
        _ = left + right

        order = Scheduler().topological_order(NodeTable.from_graph(g))
        assert order == [0, 1, 2, 3, 4]

    def test_operands_precede_users(self):
        nodes = [
            Node(id=0, kind=OpKind.INPUT, operands=(), shape=(2,)),
            Node(id=5, kind=OpKind.ADD, operands=(0, 3), shape=(2,)),
            Node(id=3, kind=OpKind.EXP, operands=(0,), shape=(2,)),
        ]
        order = Scheduler().topological_order(_table(nodes, {5: 5}))
        assert order == [0, 3, 5]

    def test_cycle_is_rejected(self):
        nodes = [
            Node(id=0, kind=OpKind.EXP, operands=(1,), shape=(2,)),
            Node(id=1, kind=OpKind.EXP, operands=(0,), shape=(2,)),
        ]
        with pytest.raises(TraceGenerationError, match="not a DAG"):
            Scheduler().topological_order(_table(nodes, {1: 1}))

    def test_missing_operand_is_rejected(self):
        nodes = [Node(id=1, kind=OpKind.EXP, operands=(0,), shape=(2,))]
        with pytest.raises(TraceGenerationError):
            Scheduler().run(_table(nodes, {1: 1}))

    def test_unresolved_shape_is_rejected(self):
        nodes = [
            Node(id=0, kind=OpKind.INPUT, operands=(), shape=(2,)),
            Node(id=1, kind=OpKind.EXP, operands=(0,), shape=None),
        ]
        with pytest.raises(UnresolvedShapeError):
            Scheduler().run(_table(nodes, {1: 1}))


# =============================================================================
# 4. Liveness and reuse
# =============================================================================


def _assert_no_live_overlap(schedule) -> None:
    live: dict[int, tuple[int, int]] = {}
    for ins in schedule.instructions:
        start, end = ins.offset, ins.offset + max(ins.nbytes, 1)
        for other, (lo, hi) in live.items():
            assert end <= lo or hi <= start, (
                f"n{ins.node} [{start}, {end}) overlaps live n{other} [{lo}, {hi})"
            )
        live[ins.node] = (start, end)
        for dead in ins.frees:
            del live[dead]


class TestLiveness:
    """Buffers are released after their last use and reused later."""

    def test_unary_chain_ping_pongs_two_buffers(self):
        g = Graph(name="chain")
        a = g.tensor((3,))
        out = a.exp().sqrt().sin()

        schedule = Scheduler().run(NodeTable.from_graph(g))

        assert [ins.offset for ins in schedule.instructions] == [0, 64, 0, 64]
        assert schedule.arena_bytes == 128
        assert schedule.naive_bytes == 256
        assert schedule.buffers_reused == 2
        assert schedule.final_live_bytes == 64
        assert schedule.instructions[-1].node == out.id
        assert schedule.instructions[-1].frees == (2,)

    def test_result_never_aliases_its_operands(self):
        g = Graph(name="alias")
        a = g.tensor((8,))
        b = g.tensor((8,))
        _ = (a + b).exp() * b

        schedule = Scheduler().run(NodeTable.from_graph(g))
        for ins in schedule.instructions:
            assert ins.offset not in ins.operand_offsets

    def test_live_buffers_never_overlap(self):
        g = Graph(name="mlp")
        x = g.tensor((4, 8))
        w1 = g.tensor((8, 16))
        w2 = g.tensor((16, 2))
        h = (x @ w1).relu()
        _ = (h @ w2).exp().sum_reduce(1)

        schedule = Scheduler().run(NodeTable.from_graph(g))
        _assert_no_live_overlap(schedule)

        seen: set[int] = set()
        for ins in schedule.instructions:
            assert set(ins.operands) <= seen
            seen.add(ins.node)

    def test_outputs_stay_live_until_the_end(self):
        g = Graph(name="outputs")
        a = g.tensor((3,))
        b = a.exp()
        c = b.sqrt()
        g.mark_output(b, c)

        schedule = Scheduler().run(NodeTable.from_graph(g))
        freed = {nid for ins in schedule.instructions for nid in ins.frees}
        assert b.id not in freed
        assert c.id not in freed

    def test_schedule_is_deterministic(self):
        g = Graph(name="determinism")
        x = g.tensor((4, 8))
        w = g.tensor((8, 4))
        _ = (x @ w).relu().mean_reduce(0)

        first = g.gen_trace(TraceConfig())
        second = g.gen_trace(TraceConfig())
        assert first.instructions == second.instructions
        assert first.arena_bytes == second.arena_bytes
