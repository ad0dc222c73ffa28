import pytest

from tracegraph.ir.errors import InvalidShapeError, ShapeMismatchError
from tracegraph.ir.shape import (
    as_shape,
    broadcast_shapes,
    expand_shape,
    is_resolved,
    numel,
    permute_shape,
    reduce_shape,
    reshape_shape,
)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((3,), (3,), (3,)),
        ((3,), (1,), (3,)),
        ((1,), (3,), (3,)),
        ((3, 1), (1, 4), (3, 4)),
        ((2, 3, 4), (2, 1, 4), (2, 3, 4)),
        ((), (), ()),
        ((0,), (1,), (0,)),
    ],
)
def test_broadcast_compatible(a, b, expected) -> None:
    assert broadcast_shapes(a, b) == expected


@pytest.mark.parametrize(
    "a, b",
    [
        ((3,), (4,)),
        ((3,), (1, 3)),
        ((2, 3), (3, 2)),
        ((0,), (2,)),
    ],
)
def test_broadcast_incompatible(a, b) -> None:
    with pytest.raises(ShapeMismatchError):
        broadcast_shapes(a, b)


def test_as_shape_normalizes_and_validates() -> None:
    assert as_shape([2, 3]) == (2, 3)
    with pytest.raises(InvalidShapeError):
        as_shape([True, 3])
    with pytest.raises(InvalidShapeError):
        as_shape(5)
    with pytest.raises(InvalidShapeError):
        as_shape((1, -2))


def test_invalid_shape_is_a_shape_mismatch() -> None:
    assert issubclass(InvalidShapeError, ShapeMismatchError)


def test_reduce_shape_axes() -> None:
    assert reduce_shape((2, 3, 4), 0) == (3, 4)
    assert reduce_shape((2, 3, 4), -1) == (2, 3)
    with pytest.raises(ShapeMismatchError):
        reduce_shape((2, 3), 2)
    with pytest.raises(ShapeMismatchError):
        reduce_shape((), 0)


def test_reshape_requires_same_element_count() -> None:
    assert reshape_shape((2, 6), (3, 4)) == (3, 4)
    with pytest.raises(ShapeMismatchError):
        reshape_shape((2, 6), (5, 2))


def test_permute_and_expand() -> None:
    assert permute_shape((2, 3, 4), (-1, 0, 1)) == ((4, 2, 3), (2, 0, 1))
    with pytest.raises(ShapeMismatchError):
        permute_shape((2, 3), (0,))
    assert expand_shape((2, 3), 0, 5) == ((5, 2, 3), 0)
    assert expand_shape((2, 3), -1, 5) == ((2, 3, 5), 2)
    with pytest.raises(ShapeMismatchError):
        expand_shape((2, 3), 3, 5)


def test_numel_and_resolution() -> None:
    assert numel((2, 3, 4)) == 24
    assert numel(()) == 1
    assert is_resolved((2, 3))
    assert not is_resolved(None)
    assert not is_resolved((2, None))
