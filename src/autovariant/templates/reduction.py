"""Reduction templates: dot products and matrix-vector products."""
from __future__ import annotations

from typing import Sequence

from autovariant.enums import FetchPolicy
from autovariant.symbolic import ExpressionBatch, Node, OpToken, Vector
from autovariant.templates.base import (
    ArgumentBinding,
    TemplateHandler,
    assignments,
    render_elementwise,
    unwrap_matrix,
)
from autovariant.variants import MReductionParameters, ReductionParameters, VariantKind


def _lane(var: str, simd_width: int, lane: int) -> str:
    if simd_width == 1:
        return var
    return f"{var}*{simd_width}+{lane}"


def _find(batch: ExpressionBatch, op: OpToken) -> Node:
    node = batch.find(op)
    if node is None:
        raise ValueError(f"Batch has no '{op.name}' node")
    return node


class ReductionTemplate(TemplateHandler):
    """s = dot(x, y) in a single work group.

    Each work item accumulates a strided (or contiguous) slice, then the
    group reduces through local memory. num_groups is carried for
    profile compatibility; the single-group scheme does not use it.
    """

    kind = VariantKind.REDUCTION
    size_names = ("N",)

    def input_sizes(
        self,
        params: ReductionParameters,
        batch: ExpressionBatch,
    ) -> tuple[int, ...]:
        node = _find(batch, OpToken.DOT)
        for item in (node.lhs, node.rhs):
            stack = [item]
            while stack:
                current = stack.pop()
                if isinstance(current, Vector):
                    return (current.size,)
                if isinstance(current, Node):
                    stack.extend(current.children())
        raise ValueError("dot operands contain no vector")

    def render_body(
        self,
        params: ReductionParameters,
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        root = assignments(batch)[0]
        node = _find(batch, OpToken.DOT)
        type_name = batch.dtype.cl_name

        terms = []
        for lane in range(simd_width):
            index = _lane("i", simd_width, lane)
            lhs = render_elementwise(node.lhs, binding, index)
            rhs = render_elementwise(node.rhs, binding, index)
            terms.append(f"    acc += {lhs} * {rhs};\n")

        if params.fetch is FetchPolicy.GLOBAL_CONTIGUOUS:
            loop = (
                f"  unsigned int chunk = (N/{simd_width} + LOCAL_SIZE_0 - 1) / LOCAL_SIZE_0;\n"
                f"  unsigned int end = min((lid + 1) * chunk, N/{simd_width});\n"
                "  for (unsigned int i = lid * chunk; i < end; ++i)\n"
            )
        else:
            loop = (
                f"  for (unsigned int i = lid; i < N/{simd_width}; i += LOCAL_SIZE_0)\n"
            )

        result = render_elementwise(root.lhs, binding, "0")
        return (
            f"  __local {type_name} buf[LOCAL_SIZE_0];\n"
            "  unsigned int lid = get_local_id(0);\n"
            f"  {type_name} acc = 0;\n"
            + loop
            + "  {\n" + "".join(terms) + "  }\n"
            "  buf[lid] = acc;\n"
            "  barrier(CLK_LOCAL_MEM_FENCE);\n"
            "  for (unsigned int s = LOCAL_SIZE_0/2; s > 0; s >>= 1)\n"
            "  {\n"
            "    if (lid < s)\n"
            "      buf[lid] += buf[lid + s];\n"
            "    barrier(CLK_LOCAL_MEM_FENCE);\n"
            "  }\n"
            "  if (lid == 0)\n"
            f"    {result} = buf[0];\n"
        )

    def ndrange(
        self,
        params: ReductionParameters,
        sizes: Sequence[int],
    ) -> tuple[tuple[int, ...], tuple[int, ...]]:
        return (params.local_size_0,), (params.local_size_0,)


class _MatrixReductionTemplate(TemplateHandler):
    """y = A x (rows) or y = A^T x (cols); one work item per output entry.

    local_size_1 is carried for profile compatibility; outputs are
    distributed along the first dimension only.
    """

    size_names = ("M", "N")
    transposed: bool

    def _operands(self, batch: ExpressionBatch):
        root = assignments(batch)[0]
        node = root.rhs
        if not isinstance(node, Node) or node.op is not OpToken.MATVEC:
            raise ValueError("matrix reductions assign a matvec product")
        matrix, transposed = unwrap_matrix(node.lhs)
        if transposed != self.transposed:
            raise ValueError(
                f"{self.kind.value} needs {'a transposed' if self.transposed else 'a plain'} matrix"
            )
        return root.lhs, matrix, node.rhs

    def input_sizes(
        self,
        params: MReductionParameters,
        batch: ExpressionBatch,
    ) -> tuple[int, ...]:
        _, matrix, _ = self._operands(batch)
        return (matrix.rows, matrix.cols)

    def render_body(
        self,
        params: MReductionParameters,
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        output, matrix, vector = self._operands(batch)
        a = binding.name(matrix)
        type_name = batch.dtype.cl_name
        if self.transposed:
            outer, outer_size, inner_size = "c", "N", "M"
        else:
            outer, outer_size, inner_size = "r", "M", "N"

        terms = []
        for lane in range(simd_width):
            inner = _lane("k", simd_width, lane)
            if self.transposed:
                element = f"{a}[({inner})*N+c]"
            else:
                element = f"{a}[r*N+{inner}]"
            x = render_elementwise(vector, binding, inner)
            terms.append(f"      acc += {element} * {x};\n")

        y = render_elementwise(output, binding, outer)
        return (
            f"  for (unsigned int {outer} = get_global_id(0); {outer} < {outer_size};"
            f" {outer} += get_global_size(0))\n"
            "  {\n"
            f"    {type_name} acc = 0;\n"
            f"    for (unsigned int k = 0; k < {inner_size}/{simd_width}; ++k)\n"
            "    {\n" + "".join(terms) + "    }\n"
            f"    {y} = acc;\n"
            "  }\n"
        )

    def ndrange(
        self,
        params: MReductionParameters,
        sizes: Sequence[int],
    ) -> tuple[tuple[int, ...], tuple[int, ...]]:
        return (params.local_size_0 * params.num_groups_0,), (params.local_size_0,)


class RowReductionTemplate(_MatrixReductionTemplate):
    kind = VariantKind.ROW_REDUCTION
    transposed = False


class ColReductionTemplate(_MatrixReductionTemplate):
    kind = VariantKind.COL_REDUCTION
    transposed = True

    def vectorized_sizes(self, sizes: Sequence[int]) -> Sequence[int]:
        return sizes[:1]
