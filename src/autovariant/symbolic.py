"""
Symbolic expressions.

A small expression-tree model: leaves reference device buffers (or carry
host scalars), nodes apply operators. Batches group expressions that are
compiled and submitted together.

Example:
    x = Vector(Buffer(x_handle), 1024, NumericType.FLOAT)
    y = Vector(Buffer(y_handle), 1024, NumericType.FLOAT)
    batch = ExpressionBatch([assign(y, add(mult(x, Scalar(2.0)), y))], ctx)
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, ClassVar, Iterator, Sequence, Union

from autovariant.enums import BatchOrder, NumericType


@unique
class OpToken(str, Enum):
    """Operators of expression nodes.

    The value is the one-character token used in fingerprints.
    """

    ASSIGN = "="
    ADD = "+"
    SUB = "-"
    MULT = "*"
    DIV = "/"
    NEG = "~"
    DOT = "d"
    MATVEC = "g"
    MATMUL = "p"
    TRANS = "t"


@dataclass(frozen=True, eq=False)
class Buffer:
    """Wrapper around a backend buffer handle.

    Leaves whose buffers wrap the same handle object are bound to the
    same kernel argument.
    """

    handle: Any
    size: int = 0


@dataclass(frozen=True, eq=False)
class Leaf:
    """Base class of expression leaves."""

    kind: ClassVar[str] = "?"

    @property
    def handle(self) -> Any:
        """Bound device handle, None for host values."""
        return None


@dataclass(frozen=True, eq=False)
class Vector(Leaf):
    kind: ClassVar[str] = "v"

    buffer: Buffer
    size: int
    dtype: NumericType

    @property
    def handle(self) -> Any:
        return self.buffer.handle


@dataclass(frozen=True, eq=False)
class Matrix(Leaf):
    """Row-major matrix."""

    kind: ClassVar[str] = "m"

    buffer: Buffer
    rows: int
    cols: int
    dtype: NumericType

    @property
    def handle(self) -> Any:
        return self.buffer.handle


@dataclass(frozen=True, eq=False)
class DeviceScalar(Leaf):
    kind: ClassVar[str] = "s"

    buffer: Buffer
    dtype: NumericType

    @property
    def handle(self) -> Any:
        return self.buffer.handle


@dataclass(frozen=True, eq=False)
class Scalar(Leaf):
    """Host scalar, passed to kernels by value."""

    kind: ClassVar[str] = "c"

    value: float | int
    dtype: NumericType = NumericType.FLOAT


Operand = Union["Node", Leaf]


@dataclass(frozen=True, eq=False)
class Node:
    op: OpToken
    lhs: Operand
    rhs: Operand | None = None

    def children(self) -> tuple[Operand, ...]:
        if self.rhs is None:
            return (self.lhs,)
        return (self.lhs, self.rhs)


@dataclass(frozen=True, eq=False)
class Expression:
    """One expression tree."""

    root: Node

    def walk(self) -> Iterator[Operand]:
        """Pre-order traversal of nodes and leaves."""
        stack: list[Operand] = [self.root]
        while stack:
            item = stack.pop()
            yield item
            if isinstance(item, Node):
                stack.extend(reversed(item.children()))

    def leaves(self) -> Iterator[Leaf]:
        for item in self.walk():
            if isinstance(item, Leaf):
                yield item

    def find(self, op: OpToken) -> Node | None:
        """First node (pre-order) with the given operator."""
        for item in self.walk():
            if isinstance(item, Node) and item.op is op:
                return item
        return None


@dataclass(frozen=True, eq=False)
class ExpressionBatch:
    """Expressions compiled into one program and submitted together.

    Attributes:
        expressions: Expression trees, in submission order.
        context: Compute context owning every buffer of the batch.
        order: INDEPENDENT for unrelated expressions fused together,
            SEQUENTIAL for a single composed expression.
        numeric_type: Explicit numeric type; inferred from leaves if None.
    """

    expressions: Sequence[Expression]
    context: Any
    order: BatchOrder = BatchOrder.SEQUENTIAL
    numeric_type: NumericType | None = None

    def __post_init__(self) -> None:
        if not self.expressions:
            raise ValueError("An expression batch needs at least one expression")
        object.__setattr__(self, "expressions", tuple(
            e if isinstance(e, Expression) else Expression(e)
            for e in self.expressions
        ))

    @property
    def dtype(self) -> NumericType:
        """Numeric type of the batch (first non-host leaf by default)."""
        if self.numeric_type is not None:
            return self.numeric_type
        for leaf in self.leaves():
            if not isinstance(leaf, Scalar):
                return leaf.dtype
        raise ValueError("Cannot infer dtype of a batch without device operands")

    def leaves(self) -> Iterator[Leaf]:
        for expression in self.expressions:
            yield from expression.leaves()

    def find(self, op: OpToken) -> Node | None:
        for expression in self.expressions:
            node = expression.find(op)
            if node is not None:
                return node
        return None


def assign(lhs: Leaf, rhs: Operand) -> Node:
    return Node(OpToken.ASSIGN, lhs, rhs)


def add(lhs: Operand, rhs: Operand) -> Node:
    return Node(OpToken.ADD, lhs, rhs)


def sub(lhs: Operand, rhs: Operand) -> Node:
    return Node(OpToken.SUB, lhs, rhs)


def mult(lhs: Operand, rhs: Operand) -> Node:
    """Element-wise product."""
    return Node(OpToken.MULT, lhs, rhs)


def div(lhs: Operand, rhs: Operand) -> Node:
    return Node(OpToken.DIV, lhs, rhs)


def neg(operand: Operand) -> Node:
    return Node(OpToken.NEG, operand)


def dot(lhs: Operand, rhs: Operand) -> Node:
    return Node(OpToken.DOT, lhs, rhs)


def matvec(matrix: Operand, vector: Operand) -> Node:
    return Node(OpToken.MATVEC, matrix, vector)


def matmul(lhs: Operand, rhs: Operand) -> Node:
    return Node(OpToken.MATMUL, lhs, rhs)


def trans(matrix: Matrix) -> Node:
    return Node(OpToken.TRANS, matrix)
