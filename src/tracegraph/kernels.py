"""Reference numpy kernels: one evaluator per operation kind.

These are used both by the constant-folding pass and by the Runtime, so a
folded constant is bit-identical to what executing the original node would
have produced. They are reference implementations, not fast ones.

Adding a new op: add an OpKind, a shape rule in the Graph builder and an
entry in KERNELS.
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

import numpy as np

from .ir.dtypes import float32
from .ir.op import FusedStep, Node, OpKind

# Numpy evaluator: (inputs, attrs) -> output array
Kernel = Callable[[list[np.ndarray], dict[str, Any]], np.ndarray]


def _eval_expand(ins: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    x = np.expand_dims(ins[0], attrs["axis"])
    shape = list(x.shape)
    shape[attrs["axis"]] = attrs["size"]
    return np.broadcast_to(x, shape)


def _eval_fused(ins: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    """Run a fused elementwise program step by step."""
    results: list[np.ndarray] = []
    for step in attrs["program"]:
        args = [ins[i] if src == "in" else results[i] for src, i in step.args]
        results.append(evaluate(step.kind, step.params, args))
    return results[-1]


KERNELS: dict[OpKind, Kernel] = {
    # --- Unary ---
    OpKind.EXP:   lambda ins, a: np.exp(ins[0]),
    OpKind.EXP2:  lambda ins, a: np.exp2(ins[0]),
    OpKind.LOG:   lambda ins, a: np.log(ins[0]),
    OpKind.LOG2:  lambda ins, a: np.log2(ins[0]),
    OpKind.SIN:   lambda ins, a: np.sin(ins[0]),
    OpKind.COS:   lambda ins, a: np.cos(ins[0]),
    OpKind.SQRT:  lambda ins, a: np.sqrt(ins[0]),
    OpKind.RECIP: lambda ins, a: np.reciprocal(ins[0]),
    OpKind.NEG:   lambda ins, a: np.negative(ins[0]),
    OpKind.ABS:   lambda ins, a: np.abs(ins[0]),
    OpKind.RELU:  lambda ins, a: np.maximum(ins[0], np.float32(0)),

    # --- Binary (numpy broadcasting covers the equal-rank rule) ---
    OpKind.ADD:       lambda ins, a: ins[0] + ins[1],
    OpKind.SUB:       lambda ins, a: ins[0] - ins[1],
    OpKind.MUL:       lambda ins, a: ins[0] * ins[1],
    OpKind.DIV:       lambda ins, a: ins[0] / ins[1],
    # Truncated remainder: the sign follows the dividend.
    OpKind.MOD:       lambda ins, a: np.fmod(ins[0], ins[1]),
    OpKind.MAXIMUM:   lambda ins, a: np.maximum(ins[0], ins[1]),
    OpKind.MINIMUM:   lambda ins, a: np.minimum(ins[0], ins[1]),
    OpKind.LESS_THAN: lambda ins, a: (ins[0] < ins[1]).astype(float32.numpy),

    # --- Reductions ---
    OpKind.SUM_REDUCE: lambda ins, a: np.sum(ins[0], axis=a["axis"], dtype=float32.numpy),
    OpKind.MAX_REDUCE: lambda ins, a: np.max(ins[0], axis=a["axis"]),

    # --- Movement ---
    OpKind.RESHAPE: lambda ins, a: ins[0].reshape(a["shape"]),
    OpKind.PERMUTE: lambda ins, a: np.transpose(ins[0], a["axes"]),
    OpKind.EXPAND:  _eval_expand,

    # --- Fused ---
    OpKind.FUSED: _eval_fused,
}


def evaluate(kind: OpKind, params: Sequence[tuple[str, Any]], inputs: list[np.ndarray]) -> np.ndarray:
    """Evaluate one operation on concrete float32 inputs."""
    kernel = KERNELS.get(kind)
    if kernel is None:
        raise ValueError(f"No kernel for {kind.value!r}")
    # nan/inf follow IEEE semantics, same as the executed trace would.
    with np.errstate(all="ignore"):
        out = kernel(inputs, dict(params))
    return np.asarray(out, dtype=float32.numpy)


def evaluate_node(node: Node, inputs: list[np.ndarray]) -> np.ndarray:
    return evaluate(node.kind, node.params, inputs)


def constant_value(node: Node) -> np.ndarray:
    if node.kind is not OpKind.CONSTANT:
        raise ValueError(f"Node {node.label()} is not a constant")
    values = node.attrs["value"]
    return np.asarray(values, dtype=node.dtype.numpy).reshape(node.shape)


def fused_kinds(node: Node) -> list[OpKind]:
    """Member kinds of a fused node, in execution order."""
    if node.kind is not OpKind.FUSED:
        return [node.kind]
    program: tuple[FusedStep, ...] = node.attrs["program"]
    return [step.kind for step in program]
