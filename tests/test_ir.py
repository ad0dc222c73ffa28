import copy

import pytest

from tracegraph.ir import Graph, OpKind
from tracegraph.ir.errors import (
	CrossGraphReferenceError,
	InvalidShapeError,
	IRValidationError,
	ShapeMismatchError,
)


def test_tensor_creates_input_node() -> None:
	g = Graph(name="inputs")
	a = g.tensor((3,), name="a")
	assert a.shape == (3,)
	assert len(g) == 1
	node = g.node(a.id)
	assert node.kind is OpKind.INPUT
	assert node.operands == ()
	assert node.name == "a"
	assert g.inputs == (a.id,)


def test_tensor_rejects_invalid_shapes() -> None:
	g = Graph(name="bad")
	with pytest.raises(InvalidShapeError):
		g.tensor(())
	with pytest.raises(InvalidShapeError):
		g.tensor((3, -1))
	with pytest.raises(InvalidShapeError):
		g.tensor((2.5,))
	assert len(g) == 0


def test_elementwise_shape_inference() -> None:
	g = Graph(name="elemwise")
	x = g.tensor((32, 32))
	y = g.tensor((32, 32))
	z = g.add(x, y)
	r = g.relu(z)
	assert z.shape == (32, 32)
	assert r.shape == (32, 32)
	assert len(g) == 4


def test_broadcasting_binary_ops() -> None:
	g = Graph(name="broadcast")
	col = g.tensor((3, 1))
	row = g.tensor((1, 4))
	assert (col * row).shape == (3, 4)
	assert (col + 1.0).shape == (3, 1)
	assert (2.0 - row).shape == (1, 4)


def test_shape_mismatch_leaves_graph_unchanged() -> None:
	g = Graph(name="mismatch")
	a = g.tensor((3,))
	b = g.tensor((4,))
	m = g.tensor((1, 3))
	before = g.nodes

	with pytest.raises(ShapeMismatchError):
		_ = a + b
	with pytest.raises(ShapeMismatchError):
		_ = g.mul(a, m)
	with pytest.raises(ShapeMismatchError):
		_ = a.sum_reduce(1)
	with pytest.raises(ShapeMismatchError):
		_ = m.reshape((2, 2))
	with pytest.raises(ShapeMismatchError):
		_ = m.permute((0, 0))

	assert g.nodes == before


def test_cannot_mix_tensors_from_different_graphs() -> None:
	g1 = Graph(name="g1")
	g2 = Graph(name="g2")

	a = g1.tensor((3,))
	b = g2.tensor((3,))

	with pytest.raises(CrossGraphReferenceError):
		_ = g1.add(a, b)
	with pytest.raises(CrossGraphReferenceError):
		_ = a * b
	with pytest.raises(IRValidationError):
		_ = g2.exp(a)
	with pytest.raises(CrossGraphReferenceError):
		g1.mark_output(b)

	assert len(g1) == 1
	assert len(g2) == 1


def test_handle_copies_alias_the_same_node() -> None:
	g = Graph(name="alias")
	a = g.tensor((3,))
	b = copy.copy(a)
	assert b == a
	assert hash(b) == hash(a)

	c = b.exp()
	d = a.exp()
	assert g.node(a.id).kind is OpKind.INPUT
	assert g.node(a.id).operands == ()
	# Building never deduplicates.
	assert c.id != d.id
	assert g.node(c.id).operands == (a.id,)
	assert len(g) == 3


def test_handles_from_different_graphs_are_not_equal() -> None:
	a = Graph(name="g1").tensor((3,))
	b = Graph(name="g2").tensor((3,))
	assert a.id == b.id
	assert a != b


def test_scalar_operands_become_constants() -> None:
	g = Graph(name="scalars")
	x = g.tensor((2, 2))
	y = x * 3.0
	const = g.node(g.node(y.id).operands[1])
	assert const.kind is OpKind.CONSTANT
	assert const.shape == (1, 1)
	assert const.attrs["value"] == (3.0,)


def test_reductions_and_movement_shapes() -> None:
	g = Graph(name="shapes")
	x = g.tensor((2, 3, 4))
	assert x.sum_reduce(1).shape == (2, 4)
	assert x.max_reduce(-1).shape == (2, 3)
	assert x.mean_reduce(0).shape == (3, 4)
	assert x.reshape((6, 4)).shape == (6, 4)
	assert x.permute((2, 0, 1)).shape == (4, 2, 3)
	assert x.expand(1, 5).shape == (2, 5, 3, 4)
	assert g.tensor((5,)).sum_reduce(0).shape == ()


def test_reduction_params_use_normalized_axis() -> None:
	g = Graph(name="axis")
	x = g.tensor((2, 3))
	s = x.sum_reduce(-1)
	assert g.node(s.id).attrs == {"axis": 1}


def test_matmul_is_recorded_from_primitives() -> None:
	g = Graph(name="matmul")
	a = g.tensor((128, 64))
	b = g.tensor((64, 32))
	c = a @ b
	assert c.shape == (128, 32)
	kinds = [n.kind for n in g.nodes[2:]]
	assert kinds == [OpKind.EXPAND, OpKind.EXPAND, OpKind.MUL, OpKind.SUM_REDUCE]


def test_matmul_k_mismatch() -> None:
	g = Graph(name="matmul_bad")
	a = g.tensor((4, 3))
	b = g.tensor((4, 3))
	with pytest.raises(ShapeMismatchError):
		_ = a @ b
	assert len(g) == 2


def test_default_outputs_are_sinks() -> None:
	g = Graph(name="outputs")
	a = g.tensor((3,))
	_unused = g.tensor((3,))
	b = a.exp()
	c = b.sqrt()
	assert g.outputs == (c.id,)

	b.retrieve()
	assert g.outputs == (b.id,)


def test_summary_lists_every_node() -> None:
	g = Graph(name="summary")
	a = g.tensor((3,), name="a")
	_ = a.exp()
	text = g.summary()
	assert "Graph(name='summary', nodes=2" in text
	assert "exp(a:(3,)) -> (3,)" in text


def test_new_graph_is_empty() -> None:
	g = Graph.new("fresh")
	assert g.name == "fresh"
	assert len(g) == 0
	assert g.outputs == ()
	assert Graph.new().id != g.id
