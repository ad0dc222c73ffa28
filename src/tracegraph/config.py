"""Configuration for trace generation."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class OptimizerConfig:
    """Which optimizer passes run, in their fixed order.

    Attributes:
        fold_constants: Evaluate nodes whose operands are all constants.
        eliminate_common_subexpressions: Unify structurally identical nodes.
        eliminate_dead_code: Drop nodes that no output depends on.
        fuse_elementwise: Merge single-consumer elementwise chains.
    """

    fold_constants: bool = True
    eliminate_common_subexpressions: bool = True
    eliminate_dead_code: bool = True
    fuse_elementwise: bool = True

    @classmethod
    def disabled(cls) -> OptimizerConfig:
        return cls(
            fold_constants=False,
            eliminate_common_subexpressions=False,
            eliminate_dead_code=False,
            fuse_elementwise=False,
        )


@dataclass(frozen=True, slots=True)
class ArenaConfig:
    """Configuration for the buffer arena traces are laid out in.

    Attributes:
        total_bytes: Capacity of the arena in bytes.
        alignment: Required alignment of every buffer in bytes.
                   Must be a power of 2. Default is 64 (cache line).
    """

    total_bytes: int = 1 << 30
    alignment: int = 64

    def __post_init__(self) -> None:
        if self.total_bytes <= 0:
            raise ValueError(f"total_bytes must be positive, got {self.total_bytes}")
        if self.alignment <= 0 or (self.alignment & (self.alignment - 1)) != 0:
            raise ValueError(
                f"alignment must be a positive power of 2, got {self.alignment}"
            )


@dataclass(frozen=True, slots=True)
class TraceConfig:
    """Top-level options for `Graph.gen_trace`.

    Attributes:
        optimize: Run the optimizer pipeline before scheduling.
        optimizer: Per-pass switches, ignored when `optimize` is False.
        arena: Buffer arena layout.
    """

    optimize: bool = True
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    arena: ArenaConfig = field(default_factory=ArenaConfig)
