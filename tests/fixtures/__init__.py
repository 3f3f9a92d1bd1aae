"""
Autovariant Test Fixtures

Reusable test fixtures for Autovariant tests.
"""
from fixtures.backend import (
    FakeClock,
    FakeContext,
    FakeDevice,
    FakeProgram,
    FakeQueue,
    Submission,
)
from fixtures.expressions import (
    axpy_batch,
    dot_batch,
    gemm_batch,
    gemv_batch,
    matrix,
    vector,
)

__all__ = [
    # Backend
    "FakeClock",
    "FakeContext",
    "FakeDevice",
    "FakeProgram",
    "FakeQueue",
    "Submission",
    # Expressions
    "axpy_batch",
    "dot_batch",
    "gemm_batch",
    "gemv_batch",
    "matrix",
    "vector",
]
