"""
Autovariant Template Registry

Maps each variant kind to the template handler implementing its
capabilities. Built-in handlers are registered at import; hosts may
replace the handler of a kind with their own generator.
"""
from __future__ import annotations

import logging
from threading import RLock

from autovariant.templates.base import TemplateHandler
from autovariant.templates.mproduct import (
    MProductNNTemplate,
    MProductNTTemplate,
    MProductTNTemplate,
    MProductTTTemplate,
)
from autovariant.templates.reduction import (
    ColReductionTemplate,
    ReductionTemplate,
    RowReductionTemplate,
)
from autovariant.templates.vaxpy import MaxpyTemplate, VaxpyTemplate
from autovariant.variants import VariantKind

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """Thread-safe VariantKind -> TemplateHandler mapping."""

    __slots__ = ("_lock", "_handlers")

    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: dict[VariantKind, TemplateHandler] = {}

    def register(self, handler: TemplateHandler, *, replace: bool = False) -> None:
        """Register the handler of `handler.kind`.

        Raises:
            ValueError: If the kind already has a handler and replace is False.
        """
        with self._lock:
            if handler.kind in self._handlers and not replace:
                raise ValueError(
                    f"Template for '{handler.kind.value}' is already registered"
                )
            self._handlers[handler.kind] = handler
            logger.debug(
                "Registered %s for %s", type(handler).__name__, handler.kind.value
            )

    def get(self, kind: VariantKind) -> TemplateHandler:
        """Handler of a kind.

        Raises:
            KeyError: If no handler is registered for the kind.
        """
        with self._lock:
            try:
                return self._handlers[kind]
            except KeyError:
                raise KeyError(f"No template registered for '{kind.value}'") from None

    @property
    def kinds(self) -> frozenset[VariantKind]:
        with self._lock:
            return frozenset(self._handlers)


_registry = TemplateRegistry()
for _handler in (
    VaxpyTemplate(),
    ReductionTemplate(),
    MaxpyTemplate(),
    RowReductionTemplate(),
    ColReductionTemplate(),
    MProductNNTemplate(),
    MProductNTTemplate(),
    MProductTNTemplate(),
    MProductTTTemplate(),
):
    _registry.register(_handler)


def get_template(kind: VariantKind) -> TemplateHandler:
    return _registry.get(kind)


def register_template(handler: TemplateHandler, *, replace: bool = False) -> None:
    _registry.register(handler, replace=replace)


__all__ = [
    "TemplateHandler",
    "TemplateRegistry",
    "get_template",
    "register_template",
]
