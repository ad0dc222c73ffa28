from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class DType:
	"""Scalar dtype for graph values.

	Every value in a graph is float32; comparisons produce 0.0/1.0 rather than
	booleans so that all buffers share one element size.
	"""

	name: str
	itemsize: int

	@property
	def numpy(self) -> np.dtype:
		return np.dtype(self.name)

	def __str__(self) -> str:  # pragma: no cover
		return self.name


float32 = DType("float32", 4)
