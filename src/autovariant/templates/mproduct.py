"""Matrix product templates, one per transpose combination."""
from __future__ import annotations

from typing import Sequence

from autovariant.symbolic import ExpressionBatch, Matrix, Node, OpToken
from autovariant.templates.base import (
    ArgumentBinding,
    TemplateHandler,
    assignments,
    round_up,
    unwrap_matrix,
)
from autovariant.variants import MProductParameters, VariantKind


class MProductTemplate(TemplateHandler):
    """C = op(A) op(B), each work item computing an MS x NS block of C.

    Operands are row-major: A is M x K (K x M when transposed) and B is
    K x N (N x K when transposed). The K loop is unrolled by the vector
    width.
    """

    size_names = ("M", "N", "K")

    def _operands(self, batch: ExpressionBatch) -> tuple[Matrix, Matrix, Matrix]:
        root = assignments(batch)[0]
        node = root.rhs
        if not isinstance(node, Node) or node.op is not OpToken.MATMUL:
            raise ValueError("matrix products assign a matmul node")
        if not isinstance(root.lhs, Matrix):
            raise ValueError("matrix products assign to a matrix")
        a, a_trans = unwrap_matrix(node.lhs)
        b, b_trans = unwrap_matrix(node.rhs)
        if (a_trans, b_trans) != self.kind.transposes:
            raise ValueError(
                f"{self.kind.value} cannot run a product with transposes "
                f"({a_trans}, {b_trans})"
            )
        return root.lhs, a, b

    def input_sizes(
        self,
        params: MProductParameters,
        batch: ExpressionBatch,
    ) -> tuple[int, ...]:
        _, a, b = self._operands(batch)
        a_trans, b_trans = self.kind.transposes
        m, k = (a.cols, a.rows) if a_trans else (a.rows, a.cols)
        n = b.rows if b_trans else b.cols
        return (m, n, k)

    def render_body(
        self,
        params: MProductParameters,
        batch: ExpressionBatch,
        binding: ArgumentBinding,
        simd_width: int,
    ) -> str:
        c, a, b = self._operands(batch)
        a_trans, b_trans = self.kind.transposes
        a_name, b_name, c_name = binding.name(a), binding.name(b), binding.name(c)
        type_name = batch.dtype.cl_name

        terms = []
        for lane in range(simd_width):
            kk = "k" if simd_width == 1 else f"k*{simd_width}+{lane}"
            a_index = f"({kk})*M+i" if a_trans else f"i*K+{kk}"
            b_index = f"j*K+{kk}" if b_trans else f"({kk})*N+j"
            terms.append(f"      acc += {a_name}[{a_index}] * {b_name}[{b_index}];\n")

        return (
            "  for (unsigned int i0 = get_global_id(0)*MS; i0 < M; i0 += get_global_size(0)*MS)\n"
            "  for (unsigned int j0 = get_global_id(1)*NS; j0 < N; j0 += get_global_size(1)*NS)\n"
            "  for (unsigned int i = i0; i < min(i0 + MS, M); ++i)\n"
            "  for (unsigned int j = j0; j < min(j0 + NS, N); ++j)\n"
            "  {\n"
            f"    {type_name} acc = 0;\n"
            f"    for (unsigned int k = 0; k < K/{simd_width}; ++k)\n"
            "    {\n" + "".join(terms) + "    }\n"
            f"    {c_name}[i*N+j] = acc;\n"
            "  }\n"
        )

    def ndrange(
        self,
        params: MProductParameters,
        sizes: Sequence[int],
    ) -> tuple[tuple[int, ...], tuple[int, ...]]:
        m, n, _ = sizes
        rows = -(-m // params.ms)
        cols = -(-n // params.ns)
        return (
            (round_up(rows, params.local_size_0), round_up(cols, params.local_size_1)),
            (params.local_size_0, params.local_size_1),
        )


class MProductNNTemplate(MProductTemplate):
    kind = VariantKind.MPRODUCT_NN


class MProductNTTemplate(MProductTemplate):
    kind = VariantKind.MPRODUCT_NT


class MProductTNTemplate(MProductTemplate):
    kind = VariantKind.MPRODUCT_TN


class MProductTTTemplate(MProductTemplate):
    kind = VariantKind.MPRODUCT_TT
