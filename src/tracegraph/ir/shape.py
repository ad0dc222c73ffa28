"""Shape descriptors and the shape rules used by builder operations.

Shapes are plain tuples of non-negative ints. Every rule here either returns
the output shape or raises ShapeMismatchError; none of them touch a graph, so
builders can run them before inserting anything.
"""

from __future__ import annotations

import operator
from typing import Iterable, Sequence

from .errors import InvalidShapeError, ShapeMismatchError


Shape = tuple[int, ...]


def as_shape(dims: Iterable[int]) -> Shape:
	try:
		items = tuple(dims)
	except TypeError:
		raise InvalidShapeError(f"Shape must be a sequence of ints, got {dims!r}") from None

	out: list[int] = []
	for d in items:
		# bool is an int subclass, but (True, 3) is never a shape anyone meant
		if isinstance(d, bool):
			raise InvalidShapeError(f"Shape dimensions must be ints, got {items!r}")
		try:
			d = operator.index(d)
		except TypeError:
			raise InvalidShapeError(f"Shape dimensions must be ints, got {items!r}") from None
		if d < 0:
			raise InvalidShapeError(f"Shape dimensions must be non-negative, got {items!r}")
		out.append(d)
	return tuple(out)


def is_resolved(shape: object) -> bool:
	"""True if `shape` is a concrete tuple of non-negative ints."""
	if not isinstance(shape, tuple):
		return False
	return all(isinstance(d, int) and not isinstance(d, bool) and d >= 0 for d in shape)


def numel(shape: Shape) -> int:
	n = 1
	for dim in shape:
		n *= dim
	return n


def broadcast_shapes(a: Shape, b: Shape) -> Shape:
	"""Elementwise broadcasting: equal rank, each dim equal or one side 1."""
	if len(a) != len(b):
		raise ShapeMismatchError(f"Rank mismatch for elementwise op: {a} vs {b}")
	out: list[int] = []
	for i, (da, db) in enumerate(zip(a, b)):
		if da == db or db == 1:
			out.append(da)
		elif da == 1:
			out.append(db)
		else:
			raise ShapeMismatchError(
				f"Cannot broadcast {a} with {b}: dim {i} is {da} vs {db}"
			)
	return tuple(out)


def normalize_axis(axis: int, rank: int) -> int:
	if rank == 0:
		raise ShapeMismatchError("Cannot index an axis of a rank-0 value")
	if not -rank <= axis < rank:
		raise ShapeMismatchError(f"Axis {axis} out of range for rank {rank}")
	return axis % rank


def reduce_shape(shape: Shape, axis: int) -> Shape:
	axis = normalize_axis(axis, len(shape))
	return shape[:axis] + shape[axis + 1:]


def reshape_shape(shape: Shape, new_shape: Sequence[int]) -> Shape:
	target = as_shape(new_shape)
	if numel(target) != numel(shape):
		raise ShapeMismatchError(
			f"Cannot reshape {shape} ({numel(shape)} elements) to {target} "
			f"({numel(target)} elements)"
		)
	return target


def permute_shape(shape: Shape, axes: Sequence[int]) -> tuple[Shape, tuple[int, ...]]:
	"""Return (permuted shape, normalized axes)."""
	rank = len(shape)
	if len(axes) != rank:
		raise ShapeMismatchError(f"permute expects {rank} axes, got {tuple(axes)}")
	norm = tuple(normalize_axis(int(a), rank) for a in axes)
	if sorted(norm) != list(range(rank)):
		raise ShapeMismatchError(f"{tuple(axes)} is not a permutation of {rank} axes")
	return tuple(shape[a] for a in norm), norm


def expand_shape(shape: Shape, axis: int, size: int) -> tuple[Shape, int]:
	"""Insert a new axis of `size` at `axis`. Return (shape, normalized axis)."""
	(size,) = as_shape((size,))
	rank = len(shape) + 1
	if not -rank <= axis < rank:
		raise ShapeMismatchError(f"Axis {axis} out of range for expand to rank {rank}")
	axis %= rank
	return shape[:axis] + (size,) + shape[axis:], axis


def matmul_shape(a: Shape, b: Shape) -> Shape:
	if len(a) != 2 or len(b) != 2:
		raise ShapeMismatchError(f"matmul supports only rank-2 operands, got {a} and {b}")
	if a[1] != b[0]:
		raise ShapeMismatchError(f"matmul K mismatch: {a[1]} != {b[0]}")
	return (a[0], b[1])
