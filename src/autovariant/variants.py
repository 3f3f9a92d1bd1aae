"""
Kernel variants.

A Variant is one fully parameterized kernel-generation strategy: a kind
tag plus the parameter struct of that kind. Variants are immutable and
dispatch their capabilities (input_sizes, generate_sources, enqueue) to
the template handler registered for their kind.

This module provides:
- VariantKind: Closed set of variant kinds
- *Parameters: Parameter struct of each kind
- Variant: Tagged variant
- PROFILE_ARITY: Profile length per kind in model descriptions
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum, unique
from typing import TYPE_CHECKING, Any, Sequence, Union

from autovariant.enums import FetchPolicy, OperationType

if TYPE_CHECKING:
    from autovariant.backend import Device, Queue
    from autovariant.programs import CompiledProgramSet
    from autovariant.symbolic import ExpressionBatch

_SIMD_WIDTHS = (1, 2, 4, 8, 16)


@unique
class VariantKind(str, Enum):
    VAXPY = "vector_axpy"
    REDUCTION = "reduction"
    MAXPY = "matrix_axpy"
    ROW_REDUCTION = "row_reduction"
    COL_REDUCTION = "col_reduction"
    MPRODUCT_NN = "matrix_product_nn"
    MPRODUCT_NT = "matrix_product_nt"
    MPRODUCT_TN = "matrix_product_tn"
    MPRODUCT_TT = "matrix_product_tt"

    @classmethod
    def for_operation(cls, operation: OperationType) -> "VariantKind":
        """Variant kind able to run an operation type."""
        return _KIND_BY_OPERATION[operation]

    @property
    def transposes(self) -> tuple[bool, bool]:
        """(A transposed, B transposed) for matrix products."""
        suffix = self.value[-2:]
        return suffix[0] == "t", suffix[1] == "t"


_KIND_BY_OPERATION = {
    OperationType.SCALAR_AXPY: VariantKind.VAXPY,
    OperationType.VECTOR_AXPY: VariantKind.VAXPY,
    OperationType.REDUCTION: VariantKind.REDUCTION,
    OperationType.MATRIX_AXPY: VariantKind.MAXPY,
    OperationType.ROW_REDUCTION: VariantKind.ROW_REDUCTION,
    OperationType.COL_REDUCTION: VariantKind.COL_REDUCTION,
    OperationType.MATRIX_PRODUCT_NN: VariantKind.MPRODUCT_NN,
    OperationType.MATRIX_PRODUCT_NT: VariantKind.MPRODUCT_NT,
    OperationType.MATRIX_PRODUCT_TN: VariantKind.MPRODUCT_TN,
    OperationType.MATRIX_PRODUCT_TT: VariantKind.MPRODUCT_TT,
}


def _check_positive(params: Any) -> None:
    for f in fields(params):
        value = getattr(params, f.name)
        if isinstance(value, int) and value <= 0:
            raise ValueError(f"{f.name} must be positive, got {value}")
    if params.simd_width not in _SIMD_WIDTHS:
        raise ValueError(
            f"simd_width must be one of {_SIMD_WIDTHS}, got {params.simd_width}"
        )


@dataclass(frozen=True)
class VaxpyParameters:
    simd_width: int
    local_size_0: int
    num_groups: int
    fetch: FetchPolicy

    def __post_init__(self) -> None:
        _check_positive(self)


@dataclass(frozen=True)
class ReductionParameters:
    """Dot product parameters; local_size_0 must be a power of two."""

    simd_width: int
    local_size_0: int
    num_groups: int
    fetch: FetchPolicy

    def __post_init__(self) -> None:
        _check_positive(self)
        if self.local_size_0 & (self.local_size_0 - 1):
            raise ValueError(
                f"reduction local_size_0 must be a power of two, got {self.local_size_0}"
            )


@dataclass(frozen=True)
class MaxpyParameters:
    simd_width: int
    local_size_0: int
    local_size_1: int
    num_groups_0: int
    num_groups_1: int
    fetch: FetchPolicy

    def __post_init__(self) -> None:
        _check_positive(self)


@dataclass(frozen=True)
class MReductionParameters:
    simd_width: int
    local_size_0: int
    local_size_1: int
    num_groups_0: int
    fetch: FetchPolicy

    def __post_init__(self) -> None:
        _check_positive(self)


@dataclass(frozen=True)
class MProductParameters:
    """Matrix product tiling.

    Attributes:
        simd_width: Vector width of the inner loop.
        local_size_0: Work-group size along rows of C.
        kl: Depth of a local-memory tile.
        local_size_1: Work-group size along columns of C.
        ms: Rows of C computed per work item.
        ks: Unrolling of the inner K loop.
        ns: Columns of C computed per work item.
        a_fetch: Fetch policy of A.
        b_fetch: Fetch policy of B.
        local_fetch_0: Local fetch shape, first dimension.
        local_fetch_1: Local fetch shape, second dimension.
    """

    simd_width: int
    local_size_0: int
    kl: int
    local_size_1: int
    ms: int
    ks: int
    ns: int
    a_fetch: FetchPolicy
    b_fetch: FetchPolicy
    local_fetch_0: int
    local_fetch_1: int

    def __post_init__(self) -> None:
        _check_positive(self)


Parameters = Union[
    VaxpyParameters,
    ReductionParameters,
    MaxpyParameters,
    MReductionParameters,
    MProductParameters,
]

_PARAMETERS_BY_KIND: dict[VariantKind, type] = {
    VariantKind.VAXPY: VaxpyParameters,
    VariantKind.REDUCTION: ReductionParameters,
    VariantKind.MAXPY: MaxpyParameters,
    VariantKind.ROW_REDUCTION: MReductionParameters,
    VariantKind.COL_REDUCTION: MReductionParameters,
    VariantKind.MPRODUCT_NN: MProductParameters,
    VariantKind.MPRODUCT_NT: MProductParameters,
    VariantKind.MPRODUCT_TN: MProductParameters,
    VariantKind.MPRODUCT_TT: MProductParameters,
}

PROFILE_ARITY: dict[VariantKind, int] = {
    kind: len(fields(params)) for kind, params in _PARAMETERS_BY_KIND.items()
}


@dataclass(frozen=True)
class Variant:
    """One kernel-generation strategy.

    Attributes:
        kind: Variant kind, selects the template handler.
        params: Parameter struct matching the kind.
    """

    kind: VariantKind
    params: Parameters

    def __post_init__(self) -> None:
        expected = _PARAMETERS_BY_KIND[self.kind]
        if not isinstance(self.params, expected):
            raise TypeError(
                f"{self.kind.value} variant needs {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )

    @classmethod
    def from_profile(cls, kind: VariantKind, profile: Sequence[int]) -> "Variant":
        """Build a variant from a description-file profile.

        Profile entries map onto the parameter struct fields in order;
        entries landing on a FetchPolicy field are policy indices.

        Raises:
            ValueError: If the profile length or a value is invalid.
        """
        params_type = _PARAMETERS_BY_KIND[kind]
        params_fields = fields(params_type)
        if len(profile) != len(params_fields):
            raise ValueError(
                f"{kind.value} profiles take {len(params_fields)} integers, "
                f"got {len(profile)}"
            )
        values = [
            FetchPolicy.from_index(value) if f.type in ("FetchPolicy", FetchPolicy) else value
            for f, value in zip(params_fields, profile)
        ]
        return cls(kind, params_type(*values))

    def input_sizes(self, batch: "ExpressionBatch") -> tuple[int, ...]:
        """Size parameters of a batch, as seen by this variant's kind."""
        return self._template().input_sizes(self.params, batch)

    def generate_sources(
        self,
        index: int,
        batch: "ExpressionBatch",
        device: "Device",
    ) -> list[str]:
        """Kernel sources, one per program slot (primary, fallback)."""
        return self._template().generate(self.params, index, batch, device)

    def enqueue(
        self,
        queue: "Queue",
        programs: "CompiledProgramSet",
        index: int,
        batch: "ExpressionBatch",
    ) -> Any:
        """Submit this variant's kernel; does not wait for completion."""
        return self._template().enqueue(self.params, queue, programs, index, batch)

    def _template(self):
        from autovariant.templates import get_template

        return get_template(self.kind)


def vaxpy(simd_width: int, local_size_0: int, num_groups: int,
          fetch: FetchPolicy) -> Variant:
    return Variant(VariantKind.VAXPY,
                   VaxpyParameters(simd_width, local_size_0, num_groups, fetch))


def reduction(simd_width: int, local_size_0: int, num_groups: int,
              fetch: FetchPolicy) -> Variant:
    return Variant(VariantKind.REDUCTION,
                   ReductionParameters(simd_width, local_size_0, num_groups, fetch))


def maxpy(simd_width: int, local_size_0: int, local_size_1: int,
          num_groups_0: int, num_groups_1: int, fetch: FetchPolicy) -> Variant:
    return Variant(VariantKind.MAXPY, MaxpyParameters(
        simd_width, local_size_0, local_size_1, num_groups_0, num_groups_1, fetch))


def mreduction_rows(simd_width: int, local_size_0: int, local_size_1: int,
                    num_groups_0: int, fetch: FetchPolicy) -> Variant:
    return Variant(VariantKind.ROW_REDUCTION, MReductionParameters(
        simd_width, local_size_0, local_size_1, num_groups_0, fetch))


def mreduction_cols(simd_width: int, local_size_0: int, local_size_1: int,
                    num_groups_0: int, fetch: FetchPolicy) -> Variant:
    return Variant(VariantKind.COL_REDUCTION, MReductionParameters(
        simd_width, local_size_0, local_size_1, num_groups_0, fetch))


def mproduct(kind: VariantKind, simd_width: int, local_size_0: int, kl: int,
             local_size_1: int, ms: int, ks: int, ns: int,
             a_fetch: FetchPolicy, b_fetch: FetchPolicy,
             local_fetch_0: int, local_fetch_1: int) -> Variant:
    return Variant(kind, MProductParameters(
        simd_width, local_size_0, kl, local_size_1, ms, ks, ns,
        a_fetch, b_fetch, local_fetch_0, local_fetch_1))
