"""Exception Hierarchy Tests for Autovariant."""
from __future__ import annotations

import pytest

from autovariant.enums import NumericType, OperationType
from autovariant.exceptions import (
    AutovariantError,
    ContextMismatchError,
    DescriptionError,
    DescriptionErrorKind,
    FingerprintOverflowError,
    ModelNotFoundError,
    PredictorError,
)


class TestExceptionHierarchy:
    """Tests for exception class hierarchy."""

    @pytest.mark.parametrize("exc_type, builtin", [
        (DescriptionError, ValueError),
        (ContextMismatchError, ValueError),
        (ModelNotFoundError, KeyError),
        (FingerprintOverflowError, RuntimeError),
        (PredictorError, ValueError),
    ])
    def test_subclasses(self, exc_type: type, builtin: type) -> None:
        """Every error is an AutovariantError and a matching builtin."""
        assert issubclass(exc_type, AutovariantError)
        assert issubclass(exc_type, builtin)

    def test_base_error_context(self) -> None:
        err = AutovariantError("boom", context={"key": 1})
        assert err.message == "boom"
        assert err.context == {"key": 1}
        assert "context=" in repr(err)

    def test_base_error_without_context(self) -> None:
        err = AutovariantError("boom")
        assert err.context == {}
        assert repr(err) == "AutovariantError('boom')"


class TestExceptionAttributes:
    """Tests for exception attributes."""

    def test_description_error(self) -> None:
        err = DescriptionError(
            DescriptionErrorKind.UNKNOWN_DTYPE,
            "Invalid datatype: float16",
            key="gemmNN.float16",
            path="models.json",
        )
        assert err.kind is DescriptionErrorKind.UNKNOWN_DTYPE
        assert err.key == "gemmNN.float16"
        assert err.context["path"] == "models.json"
        assert "float16" in str(err)

    def test_context_mismatch(self) -> None:
        err = ContextMismatchError("ctx-a", "ctx-b")
        assert err.expected == "ctx-a"
        assert err.got == "ctx-b"
        assert "ctx-b" in str(err)

    def test_model_not_found_message(self) -> None:
        """str() is the message, not KeyError's quoted repr."""
        err = ModelNotFoundError(
            OperationType.REDUCTION, NumericType.FLOAT, available=["a", "b"]
        )
        assert str(err).startswith("No selection model registered")
        assert err.available == ["a", "b"]
        assert err.context["available"] == 2

    def test_fingerprint_overflow(self) -> None:
        err = FingerprintOverflowError(300, 255)
        assert err.length == 300
        assert err.limit == 255
        assert "255" in str(err)

    def test_predictor_error(self) -> None:
        err = PredictorError(3, 2)
        assert "2 costs for 3 variants" in str(err)
