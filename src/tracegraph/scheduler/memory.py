"""BufferArena: deterministic allocator for trace buffers.

The scheduler carves every node's result buffer out of one flat arena and
releases it after its last consumer. Released ranges are handed out again,
which is how non-overlapping lifetimes end up sharing storage.

Key design principles:
- Determinism: allocation order and offsets are reproducible.
- Debuggability: OOM errors include detailed diagnostics.
- Simplicity: first-fit free-list with alignment, no fancy algorithms.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

from tracegraph.config import ArenaConfig


# =============================================================================
# Allocation Tracking
# =============================================================================


class Allocation(NamedTuple):
    """Record of a single allocation in the arena."""

    offset: int
    size: int
    tag: str


class FreeBlock(NamedTuple):
    """A contiguous free region in the arena."""

    offset: int
    size: int


# =============================================================================
# Exceptions
# =============================================================================


class ArenaOutOfMemoryError(Exception):
    """Raised when a buffer does not fit in the arena."""


# =============================================================================
# Buffer Arena
# =============================================================================


@dataclass
class BufferArena:
    """Deterministic first-fit allocator over a fixed-size byte range.

    Attributes:
        config: Arena configuration (size, alignment).
        peak_bytes: High-water mark of simultaneously allocated bytes.
        live_bytes: Currently allocated bytes.
        extent_bytes: Highest end offset ever handed out; the size a runtime
            must reserve to execute a schedule built on this arena.

    Example:
        >>> arena = BufferArena(ArenaConfig(total_bytes=1024 * 1024))
        >>> off = arena.alloc(4096, tag="exp1")
        >>> arena.free(off)
    """

    config: ArenaConfig

    # Internal state
    _allocations: dict[int, Allocation] = field(default_factory=dict, repr=False)
    _free_list: list[FreeBlock] = field(default_factory=list, repr=False)
    _peak_bytes: int = field(default=0, repr=False)
    _live_bytes: int = field(default=0, repr=False)
    _extent_bytes: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        """Initialize the arena with a single free block spanning all memory."""
        self._free_list = [FreeBlock(offset=0, size=self.config.total_bytes)]

    # -------------------------------------------------------------------------
    # Public Properties
    # -------------------------------------------------------------------------

    @property
    def peak_bytes(self) -> int:
        return self._peak_bytes

    @property
    def live_bytes(self) -> int:
        return self._live_bytes

    @property
    def extent_bytes(self) -> int:
        return self._extent_bytes

    @property
    def free_bytes(self) -> int:
        """Currently free bytes (may be fragmented)."""
        return self.config.total_bytes - self._live_bytes

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    def alloc(self, size: int, tag: str) -> int:
        """Allocate a block of memory.

        Args:
            size: Number of bytes to allocate (will be aligned up).
            tag: Human-readable identifier for debugging (e.g., "exp1").

        Returns:
            Base offset of the allocated block (aligned).

        Raises:
            ArenaOutOfMemoryError: If no suitable free block exists.
        """
        if size <= 0:
            raise ValueError(f"Allocation size must be positive, got {size}")

        aligned_size = self._align_up(size)

        # First-fit search
        for i, block in enumerate(self._free_list):
            aligned_offset = self._align_up(block.offset)
            padding = aligned_offset - block.offset
            if block.size >= padding + aligned_size:
                return self._allocate_from_block(i, block, aligned_offset, aligned_size, tag)

        self._raise_oom_error(size, aligned_size, tag)

    def free(self, offset: int) -> None:
        """Free a previously allocated block.

        Raises:
            KeyError: If offset was not allocated or already freed.
        """
        if offset not in self._allocations:
            raise KeyError(
                f"Cannot free offset 0x{offset:04X}: not allocated or already freed"
            )

        alloc = self._allocations.pop(offset)
        self._live_bytes -= alloc.size
        self._insert_and_coalesce(FreeBlock(offset=alloc.offset, size=alloc.size))

    def reset(self) -> None:
        """Free all allocations. Peak and extent are kept for inspection."""
        self._allocations.clear()
        self._free_list = [FreeBlock(offset=0, size=self.config.total_bytes)]
        self._live_bytes = 0

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def get_allocations(self) -> list[Allocation]:
        """Return all current allocations, sorted by offset."""
        return sorted(self._allocations.values(), key=lambda a: a.offset)

    def format_state(self, *, max_allocs: int = 10) -> str:
        lines = [
            "BufferArena:",
            f"  Total:     {self.config.total_bytes:,} bytes",
            f"  Live:      {self._live_bytes:,} bytes",
            f"  Peak:      {self._peak_bytes:,} bytes",
            f"  Extent:    {self._extent_bytes:,} bytes",
            f"  Alignment: {self.config.alignment} bytes",
        ]

        allocations = self.get_allocations()
        if allocations:
            lines.append(f"  Allocations ({len(allocations)} total):")
            for alloc in allocations[:max_allocs]:
                lines.append(f"    @0x{alloc.offset:04X}: {alloc.size:,} bytes [{alloc.tag}]")
            if len(allocations) > max_allocs:
                lines.append(f"    ... ({len(allocations) - max_allocs} more)")

        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Internal Helpers
    # -------------------------------------------------------------------------

    def _align_up(self, value: int) -> int:
        alignment = self.config.alignment
        return (value + alignment - 1) & ~(alignment - 1)

    def _allocate_from_block(
        self,
        block_idx: int,
        block: FreeBlock,
        aligned_offset: int,
        aligned_size: int,
        tag: str,
    ) -> int:
        self._free_list.pop(block_idx)

        # Padding before the aligned offset stays free
        if aligned_offset > block.offset:
            self._insert_free_block(FreeBlock(offset=block.offset, size=aligned_offset - block.offset))

        # So does any remainder after the allocation
        end = aligned_offset + aligned_size
        block_end = block.offset + block.size
        if end < block_end:
            self._insert_free_block(FreeBlock(offset=end, size=block_end - end))

        self._allocations[aligned_offset] = Allocation(offset=aligned_offset, size=aligned_size, tag=tag)
        self._live_bytes += aligned_size
        self._peak_bytes = max(self._peak_bytes, self._live_bytes)
        self._extent_bytes = max(self._extent_bytes, end)
        return aligned_offset

    def _insertion_point(self, offset: int) -> int:
        lo, hi = 0, len(self._free_list)
        while lo < hi:
            mid = (lo + hi) // 2
            if self._free_list[mid].offset < offset:
                lo = mid + 1
            else:
                hi = mid
        return lo

    def _insert_free_block(self, block: FreeBlock) -> None:
        """Insert a free block into the sorted free list (no coalescing)."""
        self._free_list.insert(self._insertion_point(block.offset), block)

    def _insert_and_coalesce(self, block: FreeBlock) -> None:
        """Insert a free block and merge with adjacent free blocks."""
        lo = self._insertion_point(block.offset)

        merged = block
        if lo > 0:
            prev = self._free_list[lo - 1]
            if prev.offset + prev.size == merged.offset:
                merged = FreeBlock(offset=prev.offset, size=prev.size + merged.size)
                self._free_list.pop(lo - 1)
                lo -= 1

        if lo < len(self._free_list):
            next_block = self._free_list[lo]
            if merged.offset + merged.size == next_block.offset:
                merged = FreeBlock(offset=merged.offset, size=merged.size + next_block.size)
                self._free_list.pop(lo)

        self._free_list.insert(lo, merged)

    def _raise_oom_error(self, size: int, aligned_size: int, tag: str) -> None:
        allocations = self.get_allocations()

        lines = [
            f"Arena out of memory: cannot allocate {size} bytes "
            f"(aligned: {aligned_size}) for '{tag}'",
            "",
            "Arena state:",
            f"  Total capacity:  {self.config.total_bytes:,} bytes",
            f"  Currently live:  {self._live_bytes:,} bytes",
            f"  Currently free:  {self.free_bytes:,} bytes (possibly fragmented)",
            "",
        ]

        if allocations:
            lines.append(f"Top allocations ({min(len(allocations), 5)} of {len(allocations)}):")
            for alloc in sorted(allocations, key=lambda a: -a.size)[:5]:
                lines.append(f"  @0x{alloc.offset:04X}: {alloc.size:,} bytes [{alloc.tag}]")

        if self._free_list:
            lines.append("")
            lines.append(f"Free blocks ({len(self._free_list)}):")
            for fb in self._free_list[:5]:
                lines.append(f"  @0x{fb.offset:04X}: {fb.size:,} bytes")
            if len(self._free_list) > 5:
                lines.append(f"  ... ({len(self._free_list) - 5} more)")

        raise ArenaOutOfMemoryError("\n".join(lines))
