from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np

from .dtypes import DType, float32
from .errors import CrossGraphReferenceError, IRValidationError, InvalidShapeError, ShapeMismatchError
from .op import BINARY_OPS, REDUCE_OPS, SOURCE_OPS, UNARY_OPS, Node, OpKind
from .shape import (
	Shape,
	as_shape,
	broadcast_shapes,
	expand_shape,
	matmul_shape,
	normalize_axis,
	permute_shape,
	reduce_shape,
	reshape_shape,
)
from .tensor import GraphTensor, Operand

if TYPE_CHECKING:
	from ..config import TraceConfig
	from ..trace import Trace

logger = logging.getLogger(__name__)

_graph_ids = itertools.count(1)


@dataclass(eq=False)
class Graph:
	"""An append-only computation graph.

	Invariants:
	- Nodes are appended in creation order and never modified afterwards.
	- Operands must be created before their users, so the graph is always a DAG.
	- User code only ever sees GraphTensor handles; node ids stay internal.
	- A graph is built from a single thread. Nothing here takes a lock.

	Every builder validates its operands and the resulting shape before it
	inserts anything, so a failed call leaves the graph exactly as it was.
	"""

	name: str = "graph"
	id: int = field(default_factory=lambda: next(_graph_ids), init=False)
	_nodes: list[Node] = field(default_factory=list, repr=False)
	_consumers: list[list[int]] = field(default_factory=list, repr=False)
	_marked_outputs: list[int] = field(default_factory=list, repr=False)
	_name_counters: dict[str, int] = field(default_factory=dict, repr=False)

	@classmethod
	def new(cls, name: str = "graph") -> Graph:
		return cls(name=name)

	# ------------------------------------------------------------------
	# Store
	# ------------------------------------------------------------------

	def __len__(self) -> int:
		return len(self._nodes)

	@property
	def nodes(self) -> tuple[Node, ...]:
		return tuple(self._nodes)

	def node(self, node_id: int) -> Node:
		if not 0 <= node_id < len(self._nodes):
			raise IRValidationError(f"Graph {self.name!r} has no node {node_id}")
		return self._nodes[node_id]

	def consumers(self, node_id: int) -> tuple[int, ...]:
		self.node(node_id)
		return tuple(self._consumers[node_id])

	@property
	def inputs(self) -> tuple[int, ...]:
		return tuple(n.id for n in self._nodes if n.kind is OpKind.INPUT)

	@property
	def outputs(self) -> tuple[int, ...]:
		"""Marked outputs, or every non-input node nobody consumes."""
		if self._marked_outputs:
			return tuple(self._marked_outputs)
		return tuple(
			n.id for n in self._nodes
			if not self._consumers[n.id] and n.kind is not OpKind.INPUT
		)

	def _fresh_name(self, prefix: str) -> str:
		n = self._name_counters.get(prefix, 0) + 1
		self._name_counters[prefix] = n
		return f"{prefix}{n}"

	def _insert_node(
		self,
		kind: OpKind,
		operands: tuple[int, ...],
		shape: Shape,
		*,
		params: tuple[tuple[str, Any], ...] = (),
		dtype: DType = float32,
		name: str | None = None,
	) -> GraphTensor:
		node_id = len(self._nodes)
		node = Node(
			id=node_id,
			kind=kind,
			operands=operands,
			shape=shape,
			dtype=dtype,
			params=params,
			name=name or self._fresh_name(kind.value),
		)
		self._nodes.append(node)
		self._consumers.append([])
		for operand in operands:
			self._consumers[operand].append(node_id)
		return GraphTensor(graph=self, id=node_id, shape=shape, dtype=dtype)

	def _check_owner(self, *handles: GraphTensor) -> None:
		for h in handles:
			if not isinstance(h, GraphTensor):
				raise IRValidationError(f"Expected a GraphTensor, got {type(h).__name__}")
			if h.graph is not self:
				raise CrossGraphReferenceError(
					f"Tensor {h.id} belongs to graph {h.graph.name!r} (#{h.graph.id}), "
					f"not {self.name!r} (#{self.id})"
				)

	# ------------------------------------------------------------------
	# Sources
	# ------------------------------------------------------------------

	def tensor(self, shape: Sequence[int], *, name: str | None = None, dtype: DType = float32) -> GraphTensor:
		"""Create a new input tensor."""
		shape = as_shape(shape)
		if len(shape) == 0:
			raise InvalidShapeError("Input tensors must have rank >= 1")
		h = self._insert_node(OpKind.INPUT, (), shape, dtype=dtype, name=name or self._fresh_name("x"))
		logger.debug(f"Graph {self.name!r}: input {h.node.label()} {shape}")
		return h

	def constant(
		self,
		value: Any,
		shape: Sequence[int] | None = None,
		*,
		name: str | None = None,
	) -> GraphTensor:
		"""Create a compile-time constant. Scalars broadcast to `shape` when given."""
		try:
			arr = np.asarray(value, dtype=float32.numpy)
		except (TypeError, ValueError) as e:
			raise IRValidationError(f"Cannot use {value!r} as a constant: {e}") from None
		if shape is not None:
			target = as_shape(shape)
			try:
				arr = np.broadcast_to(arr, target)
			except ValueError:
				raise ShapeMismatchError(
					f"Constant of shape {arr.shape} cannot fill shape {target}"
				) from None
		out_shape = as_shape(arr.shape)
		params = (("value", tuple(arr.ravel().tolist())),)
		return self._insert_node(OpKind.CONSTANT, (), out_shape, params=params, name=name)

	def mark_output(self, *handles: GraphTensor) -> None:
		self._check_owner(*handles)
		for h in handles:
			if h.id not in self._marked_outputs:
				self._marked_outputs.append(h.id)

	# ------------------------------------------------------------------
	# Builders
	# ------------------------------------------------------------------

	def _unary(self, kind: OpKind, x: GraphTensor, name: str | None) -> GraphTensor:
		assert kind in UNARY_OPS
		self._check_owner(x)
		return self._insert_node(kind, (x.id,), x.shape, name=name)

	def _binary(self, kind: OpKind, a: Operand, b: Operand, name: str | None) -> GraphTensor:
		assert kind in BINARY_OPS
		handles = [v for v in (a, b) if isinstance(v, GraphTensor)]
		if not handles:
			raise IRValidationError(f"{kind.value} needs at least one graph tensor operand")
		self._check_owner(*handles)
		for v in (a, b):
			if not isinstance(v, (GraphTensor, int, float, np.number)) or isinstance(v, bool):
				raise IRValidationError(f"Unsupported operand for {kind.value}: {v!r}")

		rank = handles[0].rank
		shape_a = a.shape if isinstance(a, GraphTensor) else (1,) * rank
		shape_b = b.shape if isinstance(b, GraphTensor) else (1,) * rank
		out_shape = broadcast_shapes(shape_a, shape_b)

		# Scalars become constants only once the op is known to be legal.
		if not isinstance(a, GraphTensor):
			a = self.constant(a, shape_a)
		if not isinstance(b, GraphTensor):
			b = self.constant(b, shape_b)
		return self._insert_node(kind, (a.id, b.id), out_shape, name=name)

	def exp(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.EXP, x, name)

	def exp2(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.EXP2, x, name)

	def log(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.LOG, x, name)

	def log2(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.LOG2, x, name)

	def sin(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.SIN, x, name)

	def cos(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.COS, x, name)

	def sqrt(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.SQRT, x, name)

	def recip(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.RECIP, x, name)

	def neg(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.NEG, x, name)

	def abs(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.ABS, x, name)

	def relu(self, x: GraphTensor, *, name: str | None = None) -> GraphTensor:
		return self._unary(OpKind.RELU, x, name)

	def add(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.ADD, a, b, name)

	def sub(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.SUB, a, b, name)

	def mul(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.MUL, a, b, name)

	def div(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.DIV, a, b, name)

	def mod(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.MOD, a, b, name)

	def maximum(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.MAXIMUM, a, b, name)

	def minimum(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.MINIMUM, a, b, name)

	def less_than(self, a: Operand, b: Operand, *, name: str | None = None) -> GraphTensor:
		return self._binary(OpKind.LESS_THAN, a, b, name)

	def _reduce(self, kind: OpKind, x: GraphTensor, axis: int, name: str | None) -> GraphTensor:
		assert kind in REDUCE_OPS
		self._check_owner(x)
		out_shape = reduce_shape(x.shape, axis)
		axis = normalize_axis(axis, x.rank)
		return self._insert_node(kind, (x.id,), out_shape, params=(("axis", axis),), name=name)

	def sum_reduce(self, x: GraphTensor, axis: int, *, name: str | None = None) -> GraphTensor:
		return self._reduce(OpKind.SUM_REDUCE, x, axis, name)

	def max_reduce(self, x: GraphTensor, axis: int, *, name: str | None = None) -> GraphTensor:
		self._check_owner(x)
		if x.rank and x.shape[normalize_axis(axis, x.rank)] == 0:
			raise ShapeMismatchError(f"max_reduce over empty axis {axis} of {x.shape}")
		return self._reduce(OpKind.MAX_REDUCE, x, axis, name)

	def mean_reduce(self, x: GraphTensor, axis: int, *, name: str | None = None) -> GraphTensor:
		"""Sum over `axis`, then scale by 1/n."""
		self._check_owner(x)
		n = x.shape[normalize_axis(axis, x.rank)]
		if n == 0:
			raise ShapeMismatchError(f"mean_reduce over empty axis {axis} of {x.shape}")
		total = self.sum_reduce(x, axis)
		return self.mul(total, 1.0 / n, name=name)

	def reshape(self, x: GraphTensor, shape: Sequence[int], *, name: str | None = None) -> GraphTensor:
		self._check_owner(x)
		out_shape = reshape_shape(x.shape, shape)
		return self._insert_node(OpKind.RESHAPE, (x.id,), out_shape, params=(("shape", out_shape),), name=name)

	def permute(self, x: GraphTensor, axes: Sequence[int], *, name: str | None = None) -> GraphTensor:
		self._check_owner(x)
		out_shape, axes = permute_shape(x.shape, axes)
		return self._insert_node(OpKind.PERMUTE, (x.id,), out_shape, params=(("axes", axes),), name=name)

	def expand(self, x: GraphTensor, axis: int, size: int, *, name: str | None = None) -> GraphTensor:
		"""Insert a new axis of `size` at `axis`, repeating the values along it."""
		self._check_owner(x)
		out_shape, axis = expand_shape(x.shape, axis, size)
		params = (("axis", axis), ("size", out_shape[axis]))
		return self._insert_node(OpKind.EXPAND, (x.id,), out_shape, params=params, name=name)

	def matmul(self, a: GraphTensor, b: GraphTensor, *, name: str | None = None) -> GraphTensor:
		"""(M,K) @ (K,N) -> (M,N), recorded as expand + mul + sum_reduce."""
		self._check_owner(a, b)
		m, n = matmul_shape(a.shape, b.shape)
		lhs = self.expand(a, 2, n)
		rhs = self.expand(b, 0, m)
		return self.sum_reduce(self.mul(lhs, rhs), 1, name=name)

	# ------------------------------------------------------------------
	# Compilation
	# ------------------------------------------------------------------

	def gen_trace(self, config: TraceConfig | None = None) -> Trace:
		"""Optimize a private copy of this graph and linearize it into a Trace.

		The graph itself is not modified and may keep growing afterwards.
		"""
		from ..trace import generate_trace

		return generate_trace(self, config)

	def summary(self) -> str:
		lines: list[str] = [f"Graph(name={self.name!r}, nodes={len(self._nodes)}, outputs={len(self.outputs)})"]
		for node in self._nodes:
			if node.kind in SOURCE_OPS:
				lines.append(f"- {node.label()}: {node.kind.value} -> {node.shape}")
				continue
			ins = ", ".join(f"{self._nodes[i].label()}:{self._nodes[i].shape}" for i in node.operands)
			lines.append(f"- {node.label()}: {node.kind.value}({ins}) -> {node.shape}")
		return "\n".join(lines)
