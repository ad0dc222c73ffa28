from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

import numpy as np

from .dtypes import DType, float32
from .shape import Shape


class OpKind(Enum):
	"""Operation kinds that a node can record."""

	INPUT = "input"
	CONSTANT = "constant"

	# unary elementwise
	EXP = "exp"
	EXP2 = "exp2"
	LOG = "log"
	LOG2 = "log2"
	SIN = "sin"
	COS = "cos"
	SQRT = "sqrt"
	RECIP = "recip"
	NEG = "neg"
	ABS = "abs"
	RELU = "relu"

	# binary elementwise, broadcasting
	ADD = "add"
	SUB = "sub"
	MUL = "mul"
	DIV = "div"
	MOD = "mod"
	MAXIMUM = "maximum"
	MINIMUM = "minimum"
	LESS_THAN = "less_than"

	# reductions, params: axis
	SUM_REDUCE = "sum_reduce"
	MAX_REDUCE = "max_reduce"

	# movement
	RESHAPE = "reshape"
	PERMUTE = "permute"
	EXPAND = "expand"

	# produced by the fusion pass only, params: program
	FUSED = "fused"

	def __repr__(self) -> str:  # pragma: no cover
		return f"OpKind.{self.name}"


UNARY_OPS = frozenset({
	OpKind.EXP, OpKind.EXP2, OpKind.LOG, OpKind.LOG2, OpKind.SIN, OpKind.COS,
	OpKind.SQRT, OpKind.RECIP, OpKind.NEG, OpKind.ABS, OpKind.RELU,
})
BINARY_OPS = frozenset({
	OpKind.ADD, OpKind.SUB, OpKind.MUL, OpKind.DIV, OpKind.MOD,
	OpKind.MAXIMUM, OpKind.MINIMUM, OpKind.LESS_THAN,
})
REDUCE_OPS = frozenset({OpKind.SUM_REDUCE, OpKind.MAX_REDUCE})
MOVEMENT_OPS = frozenset({OpKind.RESHAPE, OpKind.PERMUTE, OpKind.EXPAND})
ELEMENTWISE_OPS = UNARY_OPS | BINARY_OPS | {OpKind.FUSED}
SOURCE_OPS = frozenset({OpKind.INPUT, OpKind.CONSTANT})


class FusedStep(NamedTuple):
	"""One member of a fused elementwise program.

	`args` entries are ("in", i) for the i-th operand of the fused node or
	("step", j) for the result of an earlier step.
	"""

	kind: OpKind
	args: tuple[tuple[str, int], ...]
	params: tuple[tuple[str, Any], ...] = ()


@dataclass(frozen=True, slots=True)
class Node:
	"""One recorded operation.

	Operand ids always refer to nodes created earlier in the same graph, so
	the node list is a DAG by construction. `name` is a display label only:
	it takes no part in equality checks done by the optimizer.
	"""

	id: int
	kind: OpKind
	operands: tuple[int, ...]
	shape: Shape
	dtype: DType = float32
	params: tuple[tuple[str, Any], ...] = ()
	name: str = field(default="", compare=False)

	@property
	def attrs(self) -> dict[str, Any]:
		return dict(self.params)

	@property
	def rank(self) -> int:
		return len(self.shape)

	@property
	def nbytes(self) -> int:
		n = self.dtype.itemsize
		for dim in self.shape:
			n *= dim
		return n

	@property
	def is_elementwise(self) -> bool:
		return self.kind in ELEMENTWISE_OPS

	def structural_key(self) -> tuple:
		"""Key under which two nodes compute the same value.

		Constant values are keyed by their float32 bits: 0.0 and -0.0 compare
		equal as floats but are different values, and NaN never equals itself.
		"""
		params = self.params
		if self.kind is OpKind.CONSTANT:
			params = tuple(
				(key, np.asarray(value, dtype=self.dtype.numpy).tobytes()) if key == "value" else (key, value)
				for key, value in params
			)
		return (self.kind, self.operands, params, self.shape, self.dtype)

	def label(self) -> str:
		return self.name or f"{self.kind.value}{self.id}"
