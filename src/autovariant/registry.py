"""
Autovariant Model Registry

Per-queue maps of ModelKey -> SelectionModel, built lazily on first use
and kept for the life of the process. Each map starts from built-in
single-variant defaults for every (operation, numeric type) pair; a
model description named by the configuration then replaces the entries
it covers.
"""
from __future__ import annotations

import logging
from threading import Lock, RLock
from typing import TYPE_CHECKING, Any

from autovariant.config import AutovariantConfig
from autovariant.enums import FetchPolicy, NumericType, OperationType
from autovariant.exceptions import ModelNotFoundError
from autovariant.importer import PredictorFactory, try_import_models
from autovariant.model import ModelKey, SelectionModel
from autovariant.predictor import RandomForestPredictor
from autovariant.variants import (
    Variant,
    VariantKind,
    maxpy,
    mproduct,
    mreduction_cols,
    mreduction_rows,
    reduction,
    vaxpy,
)

if TYPE_CHECKING:
    from autovariant.backend import Queue

logger = logging.getLogger(__name__)

ModelMap = dict[ModelKey, SelectionModel]


def _default_mproduct(kind: VariantKind) -> Variant:
    return mproduct(kind, 1, 8, 8, 8, 4, 1, 4,
                    FetchPolicy.LOCAL, FetchPolicy.LOCAL, 8, 8)


def default_variants() -> dict[OperationType, Variant]:
    """Baseline variant of every operation type."""
    strided = FetchPolicy.GLOBAL_STRIDED
    return {
        OperationType.SCALAR_AXPY: vaxpy(1, 64, 128, strided),
        OperationType.VECTOR_AXPY: vaxpy(1, 64, 128, strided),
        OperationType.REDUCTION: reduction(1, 64, 128, strided),
        OperationType.MATRIX_AXPY: maxpy(1, 8, 8, 8, 8, strided),
        OperationType.ROW_REDUCTION: mreduction_rows(1, 8, 8, 16, strided),
        OperationType.COL_REDUCTION: mreduction_cols(1, 8, 8, 16, strided),
        OperationType.MATRIX_PRODUCT_NN: _default_mproduct(VariantKind.MPRODUCT_NN),
        OperationType.MATRIX_PRODUCT_NT: _default_mproduct(VariantKind.MPRODUCT_NT),
        OperationType.MATRIX_PRODUCT_TN: _default_mproduct(VariantKind.MPRODUCT_TN),
        OperationType.MATRIX_PRODUCT_TT: _default_mproduct(VariantKind.MPRODUCT_TT),
    }


def default_models(
    queue: "Queue",
    config: AutovariantConfig | None = None,
) -> ModelMap:
    """Single-variant models for every (operation, numeric type) pair."""
    variants = default_variants()
    return {
        ModelKey(operation, dtype): SelectionModel([variant], queue, config=config)
        for operation, variant in variants.items()
        for dtype in NumericType
    }


class ModelRegistry:
    """Process-scoped registry of per-queue model maps.

    Each queue's map is built at most once, even when several threads
    resolve a new queue concurrently. Maps are never torn down.

    Queues are keyed by identity (their hash), so one queue object
    must be reused for a device to share its models.
    """

    __slots__ = ("_lock", "_maps", "_build_locks", "_config", "_predictor_factory")

    def __init__(
        self,
        config: AutovariantConfig | None = None,
        *,
        predictor_factory: PredictorFactory = RandomForestPredictor,
    ) -> None:
        """Initialize model registry.

        Args:
            config: Configuration. If None, read from the environment
                each time a new queue's map is built.
            predictor_factory: Builds predictors of imported models.
        """
        self._lock = RLock()
        self._maps: dict[Any, ModelMap] = {}
        self._build_locks: dict[Any, Lock] = {}
        self._config = config
        self._predictor_factory = predictor_factory

    def get(self, queue: "Queue") -> ModelMap:
        """Model map of a queue, building it on first access.

        Raises:
            DescriptionError: If the configured description is invalid
                and strict_import is set.
        """
        with self._lock:
            models = self._maps.get(queue)
            if models is not None:
                return models
            build_lock = self._build_locks.setdefault(queue, Lock())

        with build_lock:
            with self._lock:
                models = self._maps.get(queue)
            if models is None:
                models = self._build(queue)
                with self._lock:
                    self._maps[queue] = models
            return models

    def get_model(
        self,
        queue: "Queue",
        operation: OperationType,
        dtype: NumericType,
    ) -> SelectionModel:
        """SelectionModel of an (operation, dtype) pair on a queue.

        Raises:
            ModelNotFoundError: If the pair is not registered.
        """
        models = self.get(queue)
        try:
            return models[ModelKey(operation, dtype)]
        except KeyError:
            raise ModelNotFoundError(
                operation, dtype, available=sorted(models)
            ) from None

    def _build(self, queue: "Queue") -> ModelMap:
        config = self._config or AutovariantConfig.from_env()
        models = default_models(queue, config)

        if config.model_file is not None:
            result = try_import_models(
                config.model_file,
                queue,
                models,
                predictor_factory=self._predictor_factory,
                config=config,
            )
            if not result.ok:
                if config.strict_import:
                    raise result.error
                logger.warning(
                    "Ignoring model description %s, using defaults: %s",
                    config.model_file,
                    result.error,
                )

        logger.info("Built %d selection models for queue %r", len(models), queue)
        return models

    @property
    def queue_count(self) -> int:
        with self._lock:
            return len(self._maps)

    def __contains__(self, queue: object) -> bool:
        with self._lock:
            return queue in self._maps

    def clear(self) -> None:
        """Forget every queue's map."""
        with self._lock:
            self._maps.clear()
            self._build_locks.clear()


_registry: ModelRegistry | None = None
_registry_lock = Lock()


def get_registry() -> ModelRegistry:
    """The process-wide registry, created on first use."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = ModelRegistry()
    return _registry


def get_model_map(queue: "Queue") -> ModelMap:
    return get_registry().get(queue)


def get_model(
    queue: "Queue",
    operation: OperationType,
    dtype: NumericType,
) -> SelectionModel:
    return get_registry().get_model(queue, operation, dtype)
