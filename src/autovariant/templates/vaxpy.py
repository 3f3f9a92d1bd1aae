"""Element-wise templates: vector axpy and matrix axpy."""
from __future__ import annotations

from typing import Sequence

from autovariant.enums import FetchPolicy
from autovariant.symbolic import DeviceScalar, ExpressionBatch, Matrix, Vector
from autovariant.templates.base import (
    ArgumentBinding,
    TemplateHandler,
    assignments,
    render_elementwise,
)
from autovariant.variants import MaxpyParameters, VariantKind, VaxpyParameters


def _vector_index(var: str, simd_width: int, lane: int) -> str:
    if simd_width == 1:
        return var
    return f"{var}*{simd_width}+{lane}"


class VaxpyTemplate(TemplateHandler):
    """y = f(x, ...) over vectors, one loop over N / simd_width.

    Also serves scalar axpy, where the assigned operand is a device
    scalar and N is 1.
    """

    kind = VariantKind.VAXPY
    size_names = ("N",)

    def input_sizes(
        self,
        params: VaxpyParameters,
        batch: ExpressionBatch,
    ) -> tuple[int, ...]:
        lhs = assignments(batch)[0].lhs
        if isinstance(lhs, Vector):
            return (lhs.size,)
        if isinstance(lhs, DeviceScalar):
            return (1,)
        raise ValueError(
            f"vector axpy assigns to a vector or scalar, got {type(lhs).__name__}"
        )

    def render_body(
        self,
        params: VaxpyParameters,
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        statements = []
        for root in assignments(batch):
            for lane in range(simd_width):
                index = _vector_index("i", simd_width, lane)
                lhs = render_elementwise(root.lhs, binding, index)
                rhs = render_elementwise(root.rhs, binding, index)
                statements.append(f"    {lhs} = {rhs};\n")

        if params.fetch is FetchPolicy.GLOBAL_CONTIGUOUS:
            loop = (
                f"  unsigned int chunk = (N/{simd_width} + get_global_size(0) - 1)"
                " / get_global_size(0);\n"
                "  unsigned int begin = get_global_id(0) * chunk;\n"
                f"  unsigned int end = min(begin + chunk, N/{simd_width});\n"
                "  for (unsigned int i = begin; i < end; ++i)\n"
            )
        else:
            loop = (
                f"  for (unsigned int i = get_global_id(0); i < N/{simd_width};"
                " i += get_global_size(0))\n"
            )
        return loop + "  {\n" + "".join(statements) + "  }\n"

    def ndrange(
        self,
        params: VaxpyParameters,
        sizes: Sequence[int],
    ) -> tuple[tuple[int, ...], tuple[int, ...]]:
        return (params.local_size_0 * params.num_groups,), (params.local_size_0,)


class MaxpyTemplate(TemplateHandler):
    """C = f(A, ...) over row-major matrices, vectorized along columns."""

    kind = VariantKind.MAXPY
    size_names = ("M", "N")

    def input_sizes(
        self,
        params: MaxpyParameters,
        batch: ExpressionBatch,
    ) -> tuple[int, ...]:
        lhs = assignments(batch)[0].lhs
        if not isinstance(lhs, Matrix):
            raise ValueError(
                f"matrix axpy assigns to a matrix, got {type(lhs).__name__}"
            )
        return (lhs.rows, lhs.cols)

    def render_body(
        self,
        params: MaxpyParameters,
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        statements = []
        for root in assignments(batch):
            for lane in range(simd_width):
                index = f"r*N+{_vector_index('c', simd_width, lane)}"
                lhs = render_elementwise(root.lhs, binding, index)
                rhs = render_elementwise(root.rhs, binding, index)
                statements.append(f"    {lhs} = {rhs};\n")
        return (
            "  for (unsigned int r = get_global_id(0); r < M; r += get_global_size(0))\n"
            f"  for (unsigned int c = get_global_id(1); c < N/{simd_width};"
            " c += get_global_size(1))\n"
            "  {\n" + "".join(statements) + "  }\n"
        )

    def ndrange(
        self,
        params: MaxpyParameters,
        sizes: Sequence[int],
    ) -> tuple[tuple[int, ...], tuple[int, ...]]:
        return (
            (params.local_size_0 * params.num_groups_0,
             params.local_size_1 * params.num_groups_1),
            (params.local_size_0, params.local_size_1),
        )
