from __future__ import annotations


class IRValidationError(ValueError):
	"""Raised by builder operations; the graph is left untouched."""


class ShapeMismatchError(IRValidationError):
	pass


class InvalidShapeError(ShapeMismatchError):
	"""The shape descriptor itself is malformed (negative dims, rank 0 input, ...)."""


class CrossGraphReferenceError(IRValidationError):
	"""A handle produced by one graph was used against another graph."""


class TraceGenerationError(Exception):
	"""Trace generation failed. The source graph is not affected."""


class UnresolvedShapeError(TraceGenerationError):
	"""A node reached the scheduler without a valid shape.

	This is an internal-consistency failure of the optimizer, not bad user input.
	"""
