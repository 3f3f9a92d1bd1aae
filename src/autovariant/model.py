"""
Autovariant Selection Model

Picks and runs one of several kernel variants for an operation.

Selection priority for an input shape:
1. Exact-shape override recorded by tune()
2. Variant 0 when the predictor is bypassed or absent
3. Lowest predicted cost, ties broken by lowest index
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import TYPE_CHECKING, NamedTuple, Sequence

from autovariant.config import AutovariantConfig
from autovariant.enums import BindingPolicy, NumericType, OperationType
from autovariant.exceptions import ContextMismatchError, PredictorError
from autovariant.fingerprint import fingerprint
from autovariant.programs import CompiledProgramSet, ProgramCache

if TYPE_CHECKING:
    from autovariant.backend import Queue
    from autovariant.predictor import Predictor
    from autovariant.symbolic import ExpressionBatch
    from autovariant.variants import Variant

logger = logging.getLogger(__name__)

InputShape = tuple[int, ...]


class ModelKey(NamedTuple):
    """(operation, dtype) key of a SelectionModel within a registry entry."""

    operation: OperationType
    dtype: NumericType


@dataclass(frozen=True)
class Choice:
    """A variant selection.

    Attributes:
        index: Selected variant index.
        reason: "override", "default" or "predictor".
    """

    index: int
    reason: str


@dataclass(frozen=True)
class TuneResult:
    """Outcome of an exhaustive tuning pass.

    Attributes:
        shape: Input shape the override was recorded for.
        timings: Wall-clock seconds per variant, in index order.
        best_index: Index of the fastest variant.
    """

    shape: InputShape
    timings: tuple[float, ...]
    best_index: int


def _argmin(values: Sequence[float]) -> int:
    # min() keeps the first minimum, so ties go to the lowest index
    return min(range(len(values)), key=values.__getitem__)


class SelectionModel:
    """Variant set, optional cost predictor and override table of one operation.

    A model is bound to one queue. Every batch it executes must live on
    that queue's context.

    Thread-safe: the program cache builds each fingerprint once and the
    override table is guarded by a lock.
    """

    __slots__ = (
        "_variants",
        "_predictor",
        "_queue",
        "_overrides",
        "_overrides_lock",
        "_programs",
        "_config",
    )

    def __init__(
        self,
        variants: Sequence["Variant"],
        queue: "Queue",
        predictor: "Predictor | None" = None,
        *,
        config: AutovariantConfig | None = None,
    ) -> None:
        """Initialize selection model.

        Args:
            variants: Candidate variants; variant 0 is the default.
            queue: Queue the model submits to.
            predictor: Cost model scoring every variant. Only meaningful
                with more than one variant.
            config: Program cache configuration.

        Raises:
            ValueError: If there is no variant, or a predictor is given
                for a single variant.
        """
        if not variants:
            raise ValueError("A selection model needs at least one variant")
        if predictor is not None and len(variants) < 2:
            raise ValueError("A single-variant model cannot have a predictor")

        self._variants = tuple(variants)
        self._predictor = predictor
        self._queue = queue
        self._overrides: dict[InputShape, int] = {}
        self._overrides_lock = Lock()
        self._config = config or AutovariantConfig()
        self._programs = ProgramCache(self._config)

    @property
    def variants(self) -> tuple["Variant", ...]:
        return self._variants

    @property
    def predictor(self) -> "Predictor | None":
        return self._predictor

    @property
    def queue(self) -> "Queue":
        return self._queue

    @property
    def program_cache(self) -> ProgramCache:
        return self._programs

    @property
    def overrides(self) -> dict[InputShape, int]:
        """Copy of the override table."""
        with self._overrides_lock:
            return dict(self._overrides)

    def input_shape(self, batch: "ExpressionBatch") -> InputShape:
        return tuple(self._variants[0].input_sizes(batch))

    def choose(self, shape: Sequence[int], bypass_predictor: bool = False) -> Choice:
        """Select a variant index for an input shape.

        Raises:
            PredictorError: If the predictor does not return one cost
                per variant.
        """
        shape = tuple(shape)
        with self._overrides_lock:
            override = self._overrides.get(shape)
        if override is not None:
            return Choice(override, "override")

        if bypass_predictor or self._predictor is None:
            return Choice(0, "default")

        costs = list(self._predictor.predict(shape))
        if len(costs) != len(self._variants):
            raise PredictorError(len(self._variants), len(costs))
        return Choice(_argmin(costs), "predictor")

    def execute(
        self,
        batch: "ExpressionBatch",
        bypass_predictor: bool = False,
        force_recompilation: bool = False,
    ) -> Choice:
        """Select a variant for the batch and submit it.

        Submission is asynchronous; this does not wait for the kernel.

        Args:
            batch: Expression batch to run.
            bypass_predictor: Use variant 0 unless an override exists.
            force_recompilation: Do not reuse cached binaries for
                programs built by this call.

        Returns:
            The Choice that was executed.

        Raises:
            ContextMismatchError: If the batch is on another context.
        """
        programs = self._programs_for(batch, force_recompilation)
        shape = self.input_shape(batch)
        choice = self.choose(shape, bypass_predictor)
        logger.debug(
            "Executing variant %d for shape %s (%s)", choice.index, shape, choice.reason
        )
        self._variants[choice.index].enqueue(self._queue, programs, choice.index, batch)
        return choice

    def tune(self, batch: "ExpressionBatch") -> TuneResult:
        """Time every variant on the batch and record the fastest.

        Both programs are compiled before timing starts. Variants run
        one at a time; the queue is drained after each so measurements
        never overlap. The fastest index becomes the override for the
        batch's input shape.

        Raises:
            ContextMismatchError: If the batch is on another context.
        """
        programs = self._programs_for(batch, False)
        # build both programs outside the timed windows
        programs.primary.program
        programs.fallback.program

        timings = []
        for index, variant in enumerate(self._variants):
            start = perf_counter()
            variant.enqueue(self._queue, programs, index, batch)
            self._queue.finish()
            timings.append(perf_counter() - start)

        shape = self.input_shape(batch)
        best = _argmin(timings)
        with self._overrides_lock:
            self._overrides[shape] = best

        logger.info(
            "Tuned shape %s over %d variants: best=%d (%.3f ms)",
            shape,
            len(timings),
            best,
            timings[best] * 1e3,
        )
        return TuneResult(shape=shape, timings=tuple(timings), best_index=best)

    def _programs_for(
        self,
        batch: "ExpressionBatch",
        force_recompilation: bool,
    ) -> CompiledProgramSet:
        context = self._queue.context
        if batch.context != context:
            raise ContextMismatchError(context, batch.context)
        name = fingerprint(
            batch,
            BindingPolicy.BIND_TO_HANDLE,
            self._config.max_fingerprint_length,
        )
        return self._programs.obtain(
            context,
            name,
            self._queue.device,
            self._variants,
            batch,
            force_recompilation=force_recompilation,
        )

    def __repr__(self) -> str:
        kinds = sorted({variant.kind.value for variant in self._variants})
        return (
            f"SelectionModel(kinds={kinds}, variants={len(self._variants)}, "
            f"predictor={self._predictor is not None})"
        )
