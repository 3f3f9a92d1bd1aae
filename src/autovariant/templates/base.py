"""
Template handler base class and source rendering helpers.

A template handler implements the capabilities of one variant kind:
deriving input sizes from a batch, generating kernel sources and
submitting the generated kernel. Handlers are stateless; the variant's
parameter struct is passed to every call.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any, ClassVar, Sequence

from autovariant.fingerprint import BindToHandle
from autovariant.symbolic import (
    DeviceScalar,
    ExpressionBatch,
    Leaf,
    Matrix,
    Node,
    OpToken,
    Scalar,
    Vector,
)

if TYPE_CHECKING:
    from autovariant.backend import Device, Queue
    from autovariant.programs import CompiledProgramSet
    from autovariant.variants import Parameters, VariantKind


@dataclass(frozen=True)
class KernelArgument:
    """One kernel argument bound from an expression leaf."""

    name: str
    leaf: Leaf

    def declaration(self) -> str:
        type_name = self.leaf.dtype.cl_name
        if isinstance(self.leaf, Scalar):
            return f"{type_name} {self.name}"
        return f"__global {type_name}* {self.name}"

    @property
    def value(self) -> Any:
        if isinstance(self.leaf, Scalar):
            return self.leaf.value
        return self.leaf.handle


class ArgumentBinding:
    """Kernel arguments of a batch, in bind-to-handle order.

    The order only depends on the batch fingerprint, so kernels
    generated for one batch accept the arguments of any batch sharing
    its fingerprint.
    """

    def __init__(self, batch: ExpressionBatch) -> None:
        binder = BindToHandle()
        self.arguments: list[KernelArgument] = []
        self._names: dict[int, str] = {}
        for leaf in batch.leaves():
            index, is_new = binder.bind(leaf)
            name = f"arg{index}"
            if is_new:
                self.arguments.append(KernelArgument(name, leaf))
            self._names[id(leaf)] = name

    def name(self, leaf: Leaf) -> str:
        return self._names[id(leaf)]

    def declarations(self) -> list[str]:
        return [argument.declaration() for argument in self.arguments]

    def values(self) -> list[Any]:
        return [argument.value for argument in self.arguments]


_C_OPERATORS = {
    OpToken.ADD: "+",
    OpToken.SUB: "-",
    OpToken.MULT: "*",
    OpToken.DIV: "/",
}


def render_elementwise(item: Any, binding: ArgumentBinding, index: str) -> str:
    """Render an element-wise operand as a C expression at `index`."""
    if isinstance(item, Node):
        if item.op is OpToken.NEG:
            return f"(-{render_elementwise(item.lhs, binding, index)})"
        if item.op in _C_OPERATORS:
            lhs = render_elementwise(item.lhs, binding, index)
            rhs = render_elementwise(item.rhs, binding, index)
            return f"({lhs} {_C_OPERATORS[item.op]} {rhs})"
        raise ValueError(f"Operator '{item.op.name}' is not element-wise")
    if isinstance(item, Scalar):
        return binding.name(item)
    if isinstance(item, DeviceScalar):
        return f"{binding.name(item)}[0]"
    if isinstance(item, (Vector, Matrix)):
        return f"{binding.name(item)}[{index}]"
    raise TypeError(f"Cannot render {type(item).__name__}")


def assignments(batch: ExpressionBatch) -> list[Node]:
    """Root assignments of a batch."""
    roots = [expression.root for expression in batch.expressions]
    for root in roots:
        if root.op is not OpToken.ASSIGN:
            raise ValueError(
                f"Expression roots must be assignments, got '{root.op.name}'"
            )
    return roots


def unwrap_matrix(item: Any) -> tuple[Matrix, bool]:
    """(matrix, transposed) of a matrix leaf or trans(matrix) node."""
    if isinstance(item, Node) and item.op is OpToken.TRANS:
        matrix, transposed = unwrap_matrix(item.lhs)
        return matrix, not transposed
    if isinstance(item, Matrix):
        return item, False
    raise ValueError(f"Expected a matrix operand, got {type(item).__name__}")


def parameter_defines(params: "Parameters") -> tuple[str, str]:
    """#define / #undef blocks for the integer parameters."""
    names = [
        (f.name.upper(), getattr(params, f.name))
        for f in fields(params)
        if isinstance(getattr(params, f.name), int)
    ]
    define = "".join(f"#define {name} {value}\n" for name, value in names)
    undef = "".join(f"#undef {name}\n" for name, _ in names)
    return define, undef


def round_up(value: int, multiple: int) -> int:
    return ((value + multiple - 1) // multiple) * multiple


class TemplateHandler(ABC):
    """Capabilities of one variant kind.

    Subclasses render a kernel body for a given vector width; the base
    class turns it into the primary (params.simd_width) and fallback
    (width 1) sources and submits the one matching the problem size.
    """

    kind: ClassVar["VariantKind"]
    size_names: ClassVar[tuple[str, ...]]

    @abstractmethod
    def input_sizes(
        self,
        params: "Parameters",
        batch: ExpressionBatch,
    ) -> tuple[int, ...]:
        """Size parameters of the batch."""

    @abstractmethod
    def render_body(
        self,
        params: "Parameters",
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        """Kernel body (the statements between the braces)."""

    @abstractmethod
    def ndrange(
        self,
        params: "Parameters",
        sizes: Sequence[int],
    ) -> tuple[tuple[int, ...], tuple[int, ...]]:
        """(global_size, local_size) of a launch."""

    def vectorized_sizes(self, sizes: Sequence[int]) -> Sequence[int]:
        """Sizes that must divide by the vector width for the primary kernel."""
        return sizes[-1:]

    def entry_point(self, index: int) -> str:
        return f"{self.kind.value}_{index}"

    def generate(
        self,
        params: "Parameters",
        index: int,
        batch: ExpressionBatch,
        device: "Device",
    ) -> list[str]:
        binding = ArgumentBinding(batch)
        return [
            self._render_kernel(params, index, batch, binding, simd_width)
            for simd_width in (params.simd_width, 1)
        ]

    def _render_kernel(
        self,
        params: "Parameters",
        index: int,
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        define, undef = parameter_defines(params)
        arguments = binding.declarations()
        arguments.extend(f"unsigned int {name}" for name in self.size_names)
        body = self.render_body(params, batch, binding, simd_width)
        return (
            f"{define}"
            f"__kernel void {self.entry_point(index)}({', '.join(arguments)})\n"
            "{\n"
            f"{body}"
            "}\n"
            f"{undef}"
        )

    def enqueue(
        self,
        params: "Parameters",
        queue: "Queue",
        programs: "CompiledProgramSet",
        index: int,
        batch: ExpressionBatch,
    ) -> Any:
        sizes = self.input_sizes(params, batch)
        aligned = all(
            size % params.simd_width == 0 for size in self.vectorized_sizes(sizes)
        )
        program = programs.primary if aligned else programs.fallback
        global_size, local_size = self.ndrange(params, sizes)
        args = ArgumentBinding(batch).values() + list(sizes)
        return queue.submit(
            program.program,
            self.entry_point(index),
            global_size,
            local_size,
            args,
        )
