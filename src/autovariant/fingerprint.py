"""
Structural fingerprints of expression batches.

A fingerprint names the program generated for a batch. It encodes the
batch numeric type, the tree structure, each leaf kind and numeric type,
and which leaves share a buffer handle. Sizes and handle values are left
out: batches that differ only in those reuse the same compiled program.

This module provides:
- SymbolicBinder: Assigns binding indices to leaves
- BindToHandle: Same handle, same index
- BindAllUnique: Fresh index for every occurrence, process-wide
- fingerprint: Compute the fingerprint of a batch
"""
from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from autovariant.enums import BindingPolicy
from autovariant.exceptions import FingerprintOverflowError
from autovariant.symbolic import ExpressionBatch, Leaf, Node

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 255


class SymbolicBinder(ABC):
    """Assigns binding indices to expression leaves."""

    @abstractmethod
    def bind(self, leaf: Leaf) -> tuple[int, bool]:
        """Bind a leaf.

        Returns:
            (index, is_new): the leaf's binding index and whether this is
            the first occurrence of that index.
        """


class BindToHandle(SymbolicBinder):
    """Leaves referencing the same handle share one index.

    Host scalars have no handle and always get a new index.
    """

    def __init__(self) -> None:
        self._bound: dict[int, int] = {}
        # keeps handles alive so their ids are not recycled mid-traversal
        self._handles: list[Any] = []
        self._next = 0

    def bind(self, leaf: Leaf) -> tuple[int, bool]:
        handle = leaf.handle
        if handle is not None:
            index = self._bound.get(id(handle))
            if index is not None:
                return index, False
            self._bound[id(handle)] = self._next
            self._handles.append(handle)
        index = self._next
        self._next += 1
        return index, True


_unique_counter = itertools.count()
_unique_lock = threading.Lock()


class BindAllUnique(SymbolicBinder):
    """Every occurrence gets an index never handed out before.

    The counter is process-wide, so fingerprints computed with this
    binder never repeat, not even for the same batch.
    """

    def bind(self, leaf: Leaf) -> tuple[int, bool]:
        with _unique_lock:
            return next(_unique_counter), True


def make_binder(policy: BindingPolicy) -> SymbolicBinder:
    if policy is BindingPolicy.BIND_TO_HANDLE:
        return BindToHandle()
    return BindAllUnique()


def leaf_token(leaf: Leaf, index: int) -> str:
    """Token of a bound leaf, e.g. 'vfloat0'."""
    return f"{leaf.kind}{leaf.dtype.cl_name}{index}"


def fingerprint(
    batch: ExpressionBatch,
    policy: BindingPolicy = BindingPolicy.BIND_TO_HANDLE,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Compute the fingerprint of an expression batch.

    Args:
        batch: Expression batch.
        policy: Binding policy.
        max_length: Maximum fingerprint length.

    Returns:
        Fingerprint string starting with 'i' (independent batch) or
        's' (sequential batch), followed by the batch numeric type.

    Raises:
        FingerprintOverflowError: If the fingerprint would exceed
            max_length. It is never truncated.
        ValueError: If the batch numeric type cannot be inferred.
    """
    binder = make_binder(policy)
    parts = [batch.order.prefix, batch.dtype.cl_name]
    length = len(parts[0]) + len(parts[1])
    if length > max_length:
        raise FingerprintOverflowError(length, max_length)

    for expression in batch.expressions:
        for item in expression.walk():
            if isinstance(item, Node):
                token = item.op.value
            else:
                index, _ = binder.bind(item)
                token = leaf_token(item, index)
            length += len(token)
            if length > max_length:
                raise FingerprintOverflowError(length, max_length)
            parts.append(token)

    name = "".join(parts)
    logger.debug("Fingerprint (%s): %s", policy.value, name)
    return name
