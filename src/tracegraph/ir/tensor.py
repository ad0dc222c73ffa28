from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence, Union

from .dtypes import DType
from .shape import Shape

if TYPE_CHECKING:
	from .graph import Graph
	from .op import Node


@dataclass(frozen=True, slots=True)
class GraphTensor:
	"""A handle to one node of a graph.

	Handles are plain values: copying one never copies the node, and any
	number of handles may refer to the same node. Every operation returns a
	new handle and leaves its operands alone.
	"""

	graph: Graph
	id: int
	shape: Shape
	dtype: DType

	@property
	def rank(self) -> int:
		return len(self.shape)

	@property
	def numel(self) -> int:
		n = 1
		for dim in self.shape:
			n *= dim
		return n

	@property
	def node(self) -> Node:
		return self.graph.node(self.id)

	def retrieve(self) -> GraphTensor:
		"""Mark this value as a trace output and return it."""
		self.graph.mark_output(self)
		return self

	# unary
	def exp(self) -> GraphTensor:
		return self.graph.exp(self)

	def exp2(self) -> GraphTensor:
		return self.graph.exp2(self)

	def log(self) -> GraphTensor:
		return self.graph.log(self)

	def log2(self) -> GraphTensor:
		return self.graph.log2(self)

	def sin(self) -> GraphTensor:
		return self.graph.sin(self)

	def cos(self) -> GraphTensor:
		return self.graph.cos(self)

	def sqrt(self) -> GraphTensor:
		return self.graph.sqrt(self)

	def recip(self) -> GraphTensor:
		return self.graph.recip(self)

	def relu(self) -> GraphTensor:
		return self.graph.relu(self)

	# binary
	def maximum(self, other: Operand) -> GraphTensor:
		return self.graph.maximum(self, other)

	def minimum(self, other: Operand) -> GraphTensor:
		return self.graph.minimum(self, other)

	def less_than(self, other: Operand) -> GraphTensor:
		return self.graph.less_than(self, other)

	def matmul(self, other: GraphTensor) -> GraphTensor:
		return self.graph.matmul(self, other)

	# reductions
	def sum_reduce(self, axis: int) -> GraphTensor:
		return self.graph.sum_reduce(self, axis)

	def max_reduce(self, axis: int) -> GraphTensor:
		return self.graph.max_reduce(self, axis)

	def mean_reduce(self, axis: int) -> GraphTensor:
		return self.graph.mean_reduce(self, axis)

	# movement
	def reshape(self, shape: Sequence[int]) -> GraphTensor:
		return self.graph.reshape(self, shape)

	def permute(self, axes: Sequence[int]) -> GraphTensor:
		return self.graph.permute(self, axes)

	def expand(self, axis: int, size: int) -> GraphTensor:
		return self.graph.expand(self, axis, size)

	# operators
	def __add__(self, other: Operand) -> GraphTensor:
		return self.graph.add(self, other)

	def __radd__(self, other: Operand) -> GraphTensor:
		return self.graph.add(other, self)

	def __sub__(self, other: Operand) -> GraphTensor:
		return self.graph.sub(self, other)

	def __rsub__(self, other: Operand) -> GraphTensor:
		return self.graph.sub(other, self)

	def __mul__(self, other: Operand) -> GraphTensor:
		return self.graph.mul(self, other)

	def __rmul__(self, other: Operand) -> GraphTensor:
		return self.graph.mul(other, self)

	def __truediv__(self, other: Operand) -> GraphTensor:
		return self.graph.div(self, other)

	def __rtruediv__(self, other: Operand) -> GraphTensor:
		return self.graph.div(other, self)

	def __mod__(self, other: Operand) -> GraphTensor:
		return self.graph.mod(self, other)

	def __lt__(self, other: Operand) -> GraphTensor:
		return self.graph.less_than(self, other)

	def __gt__(self, other: Operand) -> GraphTensor:
		return self.graph.less_than(other, self)

	def __matmul__(self, other: GraphTensor) -> GraphTensor:
		return self.graph.matmul(self, other)

	def __neg__(self) -> GraphTensor:
		return self.graph.neg(self)

	def __abs__(self) -> GraphTensor:
		return self.graph.abs(self)

	def __repr__(self) -> str:  # pragma: no cover
		return f"GraphTensor(graph={self.graph.name!r}, id={self.id}, shape={self.shape})"


Operand = Union[GraphTensor, int, float]
