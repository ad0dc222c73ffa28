import numpy as np
import pytest

from tracegraph.ir import Node, OpKind
from tracegraph.ir.op import FusedStep
from tracegraph.kernels import KERNELS, constant_value, evaluate, fused_kinds


def _f32(*values):
    return np.array(values, dtype=np.float32)


def test_every_computing_op_has_a_kernel() -> None:
    missing = [k for k in OpKind if k not in KERNELS and k not in (OpKind.INPUT, OpKind.CONSTANT)]
    assert missing == []


@pytest.mark.parametrize(
    "kind, x, expected",
    [
        (OpKind.RELU, _f32(-1.0, 0.0, 2.0), _f32(0.0, 0.0, 2.0)),
        (OpKind.NEG, _f32(1.0, -2.0), _f32(-1.0, 2.0)),
        (OpKind.RECIP, _f32(2.0, 4.0), _f32(0.5, 0.25)),
        (OpKind.EXP2, _f32(0.0, 3.0), _f32(1.0, 8.0)),
        (OpKind.LOG2, _f32(1.0, 8.0), _f32(0.0, 3.0)),
    ],
)
def test_unary_kernels(kind, x, expected) -> None:
    np.testing.assert_allclose(evaluate(kind, (), [x]), expected)


def test_mod_is_truncated() -> None:
    out = evaluate(OpKind.MOD, (), [_f32(7.0, -7.0), _f32(3.0, 3.0)])
    np.testing.assert_array_equal(out, _f32(1.0, -1.0))


def test_less_than_produces_floats() -> None:
    out = evaluate(OpKind.LESS_THAN, (), [_f32(1.0, 5.0), _f32(2.0, 2.0)])
    assert out.dtype == np.float32
    np.testing.assert_array_equal(out, _f32(1.0, 0.0))


def test_ieee_results_do_not_raise() -> None:
    out = evaluate(OpKind.DIV, (), [_f32(1.0, 0.0), _f32(0.0, 0.0)])
    assert np.isinf(out[0])
    assert np.isnan(out[1])


def test_movement_kernels() -> None:
    x = np.arange(6, dtype=np.float32).reshape(2, 3)
    assert evaluate(OpKind.PERMUTE, (("axes", (1, 0)),), [x]).shape == (3, 2)
    assert evaluate(OpKind.RESHAPE, (("shape", (3, 2)),), [x]).shape == (3, 2)
    expanded = evaluate(OpKind.EXPAND, (("axis", 1), ("size", 4)), [x])
    assert expanded.shape == (2, 4, 3)
    np.testing.assert_array_equal(expanded[:, 2, :], x)


def test_fused_program_evaluation() -> None:
    program = (
        FusedStep(OpKind.MUL, (("in", 0), ("in", 1))),
        FusedStep(OpKind.SQRT, (("step", 0),)),
        FusedStep(OpKind.SUB, (("step", 1), ("in", 0))),
    )
    out = evaluate(OpKind.FUSED, (("program", program),), [_f32(4.0, 9.0), _f32(1.0, 1.0)])
    np.testing.assert_allclose(out, _f32(-2.0, -6.0))


def test_constant_value_and_fused_kinds() -> None:
    const = Node(id=0, kind=OpKind.CONSTANT, operands=(), shape=(2, 1), params=(("value", (1.0, 2.0)),))
    np.testing.assert_array_equal(constant_value(const), [[1.0], [2.0]])
    assert fused_kinds(const) == [OpKind.CONSTANT]
    with pytest.raises(ValueError):
        constant_value(Node(id=1, kind=OpKind.EXP, operands=(0,), shape=(2, 1)))
