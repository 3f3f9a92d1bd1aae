"""
Autovariant Core Enumerations

Type-safe enums for operation types, numeric types, fetch policies and
fingerprint binding policies. All enums inherit from (str, Enum) so they
serialize to their description-file names.

This module provides:
- OperationType: Operation families a SelectionModel can serve
- NumericType: Element types of the compute backend
- FetchPolicy: Data-staging strategy for a variant operand
- BindingPolicy: How fingerprint tokens are assigned to buffer handles
- BatchOrder: Whether a batch is independent or a composed sequence
"""
from __future__ import annotations

from enum import Enum, unique
from typing import Any


@unique
class OperationType(str, Enum):
    """Operation family.

    Members:
        SCALAR_AXPY: Scalar update (x = a*y + b*z on scalars)
        VECTOR_AXPY: Element-wise vector expression
        REDUCTION: Vector reduction (dot product)
        MATRIX_AXPY: Element-wise matrix expression
        ROW_REDUCTION: Matrix-vector product, reduce along rows (gemvN)
        COL_REDUCTION: Transposed matrix-vector product (gemvT)
        MATRIX_PRODUCT_NN..TT: Matrix products in all transpose combinations
    """

    SCALAR_AXPY = "scalar_axpy"
    VECTOR_AXPY = "vector_axpy"
    REDUCTION = "reduction"
    MATRIX_AXPY = "matrix_axpy"
    ROW_REDUCTION = "row_reduction"
    COL_REDUCTION = "col_reduction"
    MATRIX_PRODUCT_NN = "matrix_product_nn"
    MATRIX_PRODUCT_NT = "matrix_product_nt"
    MATRIX_PRODUCT_TN = "matrix_product_tn"
    MATRIX_PRODUCT_TT = "matrix_product_tt"

    @property
    def is_matrix_product(self) -> bool:
        """Whether this is one of the four matrix product types."""
        return self.name.startswith("MATRIX_PRODUCT_")


@unique
class NumericType(str, Enum):
    """Element type of device buffers.

    The string value is the canonical type name; `cl_name` is the
    OpenCL C spelling used in generated sources.
    """

    CHAR = "int8"
    UCHAR = "uint8"
    SHORT = "int16"
    USHORT = "uint16"
    INT = "int32"
    UINT = "uint32"
    LONG = "int64"
    ULONG = "uint64"
    FLOAT = "float32"
    DOUBLE = "float64"

    @property
    def cl_name(self) -> str:
        """OpenCL C type name."""
        return _CL_NAMES[self]

    @property
    def size(self) -> int:
        """Element size in bytes."""
        return _SIZES[self]

    @property
    def is_floating(self) -> bool:
        """Whether this is a floating point type."""
        return self in (NumericType.FLOAT, NumericType.DOUBLE)

    @classmethod
    def from_dtype(cls, dtype: Any) -> "NumericType":
        """Convert a torch/numpy dtype or a type name to NumericType.

        Args:
            dtype: torch.dtype, numpy dtype, NumericType or type name.

        Returns:
            Matching NumericType.

        Raises:
            ValueError: If the dtype has no matching numeric type.
        """
        if isinstance(dtype, NumericType):
            return dtype
        name = str(dtype).replace("torch.", "")
        if name.startswith("<class 'numpy."):
            name = name[len("<class 'numpy."):-2]
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unsupported dtype: {dtype!r}") from None

    def to_torch(self) -> Any:
        """Convert to the corresponding torch dtype."""
        import torch

        return getattr(torch, self.value)


_CL_NAMES = {
    NumericType.CHAR: "char",
    NumericType.UCHAR: "uchar",
    NumericType.SHORT: "short",
    NumericType.USHORT: "ushort",
    NumericType.INT: "int",
    NumericType.UINT: "uint",
    NumericType.LONG: "long",
    NumericType.ULONG: "ulong",
    NumericType.FLOAT: "float",
    NumericType.DOUBLE: "double",
}

_SIZES = {
    NumericType.CHAR: 1,
    NumericType.UCHAR: 1,
    NumericType.SHORT: 2,
    NumericType.USHORT: 2,
    NumericType.INT: 4,
    NumericType.UINT: 4,
    NumericType.LONG: 8,
    NumericType.ULONG: 8,
    NumericType.FLOAT: 4,
    NumericType.DOUBLE: 8,
}


@unique
class FetchPolicy(str, Enum):
    """Data-staging strategy of a variant operand.

    Description files select a policy by position, see `from_index`.

    Members:
        LOCAL: Stage tiles through local memory
        GLOBAL_STRIDED: Read global memory with a work-group stride
        GLOBAL_CONTIGUOUS: Read contiguous global chunks per work item
    """

    LOCAL = "local"
    GLOBAL_STRIDED = "global_strided"
    GLOBAL_CONTIGUOUS = "global_contiguous"

    @classmethod
    def from_index(cls, index: int) -> "FetchPolicy":
        """Fetch policy from its description-file index (0, 1 or 2)."""
        members = list(cls)
        if not 0 <= index < len(members):
            raise ValueError(
                f"Fetch policy index must be in [0, {len(members)}), got {index}"
            )
        return members[index]


@unique
class BindingPolicy(str, Enum):
    """Fingerprint binding policy.

    Members:
        BIND_TO_HANDLE: Same buffer handle, same token (enables reuse)
        BIND_ALL_UNIQUE: Every occurrence gets a fresh token
    """

    BIND_TO_HANDLE = "bind_to_handle"
    BIND_ALL_UNIQUE = "bind_all_unique"


@unique
class BatchOrder(str, Enum):
    """Relationship between the expressions of a batch.

    Members:
        INDEPENDENT: Unrelated expressions submitted together (prefix 'i')
        SEQUENTIAL: A single composed expression sequence (prefix 's')
    """

    INDEPENDENT = "independent"
    SEQUENTIAL = "sequential"

    @property
    def prefix(self) -> str:
        """Fingerprint prefix character."""
        return "i" if self is BatchOrder.INDEPENDENT else "s"
