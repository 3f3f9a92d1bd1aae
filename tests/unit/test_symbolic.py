"""Symbolic Expression Tests for Autovariant."""
from __future__ import annotations

import pytest

from autovariant.enums import NumericType
from autovariant.symbolic import (
    Buffer,
    DeviceScalar,
    Expression,
    ExpressionBatch,
    Node,
    OpToken,
    Scalar,
    Vector,
    add,
    assign,
    dot,
    neg,
)

from fixtures.expressions import vector


class TestExpression:
    """Tests for Expression traversal."""

    def test_walk_is_pre_order(self) -> None:
        x, y = vector(8), vector(8)
        root = assign(y, add(x, neg(y)))
        items = list(Expression(root).walk())

        assert items[0] is root
        assert items[1] is y
        assert items[2].op is OpToken.ADD
        assert items[3] is x
        assert items[4].op is OpToken.NEG
        assert items[5] is y

    def test_leaves_and_find(self) -> None:
        x, y = vector(8), vector(8)
        s = DeviceScalar(Buffer(object()), NumericType.FLOAT)
        expression = Expression(assign(s, dot(x, y)))

        assert list(expression.leaves()) == [s, x, y]
        assert expression.find(OpToken.DOT).lhs is x
        assert expression.find(OpToken.MATMUL) is None

    def test_unary_node_children(self) -> None:
        node = neg(vector(4))
        assert len(node.children()) == 1


class TestExpressionBatch:
    """Tests for ExpressionBatch."""

    def test_wraps_bare_nodes(self) -> None:
        batch = ExpressionBatch([assign(vector(4), vector(4))], "ctx")
        assert isinstance(batch.expressions[0], Expression)
        assert isinstance(batch.expressions, tuple)

    def test_rejects_empty_batch(self) -> None:
        with pytest.raises(ValueError):
            ExpressionBatch([], "ctx")

    def test_dtype_skips_host_scalars(self) -> None:
        y = vector(4, NumericType.DOUBLE)
        batch = ExpressionBatch([assign(y, add(Scalar(1.0), y))], "ctx")
        assert batch.dtype is NumericType.DOUBLE

    def test_explicit_numeric_type(self) -> None:
        batch = ExpressionBatch(
            [assign(vector(4), vector(4))], "ctx", numeric_type=NumericType.INT
        )
        assert batch.dtype is NumericType.INT

    def test_dtype_needs_device_operand(self) -> None:
        root = Node(OpToken.ADD, Scalar(1.0), Scalar(2.0))
        with pytest.raises(ValueError):
            ExpressionBatch([root], "ctx").dtype

    def test_leaf_handles(self) -> None:
        handle = object()
        assert Vector(Buffer(handle), 4, NumericType.FLOAT).handle is handle
        assert Scalar(3).handle is None
