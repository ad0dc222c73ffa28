"""Trace scheduling: ordering, liveness and buffer assignment."""

from tracegraph.scheduler.memory import (
    Allocation,
    ArenaOutOfMemoryError,
    BufferArena,
    FreeBlock,
)
from tracegraph.scheduler.ops import (
    Instruction,
    TraceStats,
    format_instructions,
    format_stats,
)
from tracegraph.scheduler.scheduler import (
    Schedule,
    Scheduler,
)

__all__ = [
    # ops.py: Trace IR
    "Instruction",
    "TraceStats",
    "format_instructions",
    "format_stats",
    # scheduler.py: Scheduler
    "Schedule",
    "Scheduler",
    # memory.py: buffer allocator
    "BufferArena",
    "Allocation",
    "FreeBlock",
    "ArenaOutOfMemoryError",
]
