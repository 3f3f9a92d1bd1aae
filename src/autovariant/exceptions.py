"""
Autovariant Exception Hierarchy

Configuration errors, precondition violations and fingerprint overflow.
Backend failures (compilation, submission) are not wrapped and propagate
from the compute backend as-is.
"""
from __future__ import annotations

from enum import Enum, unique
from typing import Any, Optional, Sequence


class AutovariantError(Exception):
    """Base exception for all autovariant errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dict of additional context for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize AutovariantError.

        Args:
            message: Error message.
            context: Optional context dict.
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        ctx_str = f", context={self.context}" if self.context else ""
        return f"{self.__class__.__name__}({self.message!r}{ctx_str})"


@unique
class DescriptionErrorKind(str, Enum):
    """Classification of description-file errors."""

    UNREADABLE = "unreadable"
    MALFORMED = "malformed"
    UNKNOWN_OPERATION = "unknown_operation"
    UNKNOWN_DTYPE = "unknown_dtype"
    BAD_PROFILE = "bad_profile"
    MISSING_PREDICTOR = "missing_predictor"
    PREDICTOR_MISMATCH = "predictor_mismatch"


class DescriptionError(AutovariantError, ValueError):
    """Raised when a declarative model description is invalid.

    Description files are user-authored, so every error names the
    offending key.

    Attributes:
        kind: Error classification.
        key: Dotted path of the offending entry (e.g. "gemmNN.float32").
        path: Description file path, if loaded from a file.
    """

    def __init__(
        self,
        kind: DescriptionErrorKind,
        message: str,
        *,
        key: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.key = key
        self.path = path

        super().__init__(
            message,
            context={"kind": kind.value, "key": key, "path": path},
        )


class ContextMismatchError(AutovariantError, ValueError):
    """Raised when an expression batch belongs to another compute context.

    A SelectionModel is bound to one queue; passing it a batch created
    on a different context is a programming error in the host.
    """

    def __init__(self, expected: Any, got: Any) -> None:
        self.expected = expected
        self.got = got
        super().__init__(
            f"Expression batch context {got!r} does not match "
            f"the model queue context {expected!r}",
            context={"expected": repr(expected), "got": repr(got)},
        )


class ModelNotFoundError(AutovariantError, KeyError):
    """Raised when no SelectionModel is registered for a model key."""

    def __init__(
        self,
        operation: Any,
        dtype: Any,
        *,
        available: Optional[Sequence[Any]] = None,
    ) -> None:
        self.operation = operation
        self.dtype = dtype
        self.available = list(available) if available else []
        super().__init__(
            f"No selection model registered for ({operation}, {dtype})",
            context={
                "operation": str(operation),
                "dtype": str(dtype),
                "available": len(self.available),
            },
        )

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class FingerprintOverflowError(AutovariantError, RuntimeError):
    """Raised when a batch fingerprint exceeds the maximum length.

    Truncating would alias distinct programs under one cache key.
    """

    def __init__(self, length: int, limit: int) -> None:
        self.length = length
        self.limit = limit
        super().__init__(
            f"Program fingerprint needs at least {length} characters, "
            f"limit is {limit}",
            context={"length": length, "limit": limit},
        )


class PredictorError(AutovariantError, ValueError):
    """Raised when a predictor does not score every variant exactly once."""

    def __init__(self, expected: int, got: int) -> None:
        self.expected = expected
        self.got = got
        super().__init__(
            f"Predictor returned {got} costs for {expected} variants",
            context={"expected": expected, "got": got},
        )
