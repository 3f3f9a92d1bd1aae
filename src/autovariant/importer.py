"""
Model description importer.

Builds SelectionModels from a declarative description:

    gemmNN:
      float32:
        profiles:
          - [1, 8, 8, 8, 4, 1, 4, 0, 0, 8, 8]
          - [4, 16, 8, 16, 4, 1, 4, 1, 1, 8, 8]
        predictor: {trees: [...]}

Descriptions are read with yaml.safe_load, so JSON files load as well.
Import is all-or-nothing: the target map is only updated once the whole
description has been validated and every model built.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping, MutableMapping

import yaml

from autovariant.config import AutovariantConfig
from autovariant.enums import NumericType, OperationType
from autovariant.exceptions import DescriptionError, DescriptionErrorKind
from autovariant.model import ModelKey, SelectionModel
from autovariant.predictor import Predictor, RandomForestPredictor
from autovariant.templates import get_template
from autovariant.variants import PROFILE_ARITY, Variant, VariantKind

if TYPE_CHECKING:
    from autovariant.backend import Queue

logger = logging.getLogger(__name__)

OPERATION_NAMES: dict[str, OperationType] = {
    "vaxpy": OperationType.VECTOR_AXPY,
    "dot": OperationType.REDUCTION,
    "maxpy": OperationType.MATRIX_AXPY,
    "gemvN": OperationType.ROW_REDUCTION,
    "gemvT": OperationType.COL_REDUCTION,
    "gemmNN": OperationType.MATRIX_PRODUCT_NN,
    "gemmNT": OperationType.MATRIX_PRODUCT_NT,
    "gemmTN": OperationType.MATRIX_PRODUCT_TN,
    "gemmTT": OperationType.MATRIX_PRODUCT_TT,
}

# Only floating point kernels can be overridden from a description
DTYPE_NAMES: dict[str, NumericType] = {
    "float32": NumericType.FLOAT,
    "float64": NumericType.DOUBLE,
}

PredictorFactory = Callable[[Any], Predictor]
ModelMap = MutableMapping[ModelKey, SelectionModel]


@dataclass
class ImportResult:
    """Outcome of try_import_models.

    Attributes:
        models: Models imported (empty on failure).
        error: The description error, None on success.
    """

    models: dict[ModelKey, SelectionModel] = field(default_factory=dict)
    error: DescriptionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def load_description(path: str | Path) -> dict[str, Any]:
    """Read and parse a description file.

    Raises:
        DescriptionError: If the file cannot be read or parsed, or its
            top level is not a mapping.
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            content = yaml.safe_load(f)
    except OSError as e:
        raise DescriptionError(
            DescriptionErrorKind.UNREADABLE,
            f"Cannot read model description {path}: {e}",
            path=str(path),
        ) from e
    except yaml.YAMLError as e:
        raise DescriptionError(
            DescriptionErrorKind.MALFORMED,
            f"Cannot parse model description {path}: {e}",
            path=str(path),
        ) from e

    if not isinstance(content, dict):
        raise DescriptionError(
            DescriptionErrorKind.MALFORMED,
            "Model description must be a mapping of operation names",
            path=str(path),
        )
    return content


def _profile(value: Any, kind: VariantKind, key: str, path: str | None) -> Variant:
    if not isinstance(value, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in value
    ):
        raise DescriptionError(
            DescriptionErrorKind.BAD_PROFILE,
            f"Profile {key} must be a list of integers, got {value!r}",
            key=key,
            path=path,
        )
    if len(value) != PROFILE_ARITY[kind]:
        raise DescriptionError(
            DescriptionErrorKind.BAD_PROFILE,
            f"Profile {key} has {len(value)} integers, "
            f"{PROFILE_ARITY[kind]} expected",
            key=key,
            path=path,
        )
    try:
        return Variant.from_profile(kind, value)
    except ValueError as e:
        raise DescriptionError(
            DescriptionErrorKind.BAD_PROFILE,
            f"Profile {key} is invalid: {e}",
            key=key,
            path=path,
        ) from e


def _predictor(
    description: Any,
    factory: PredictorFactory,
    variant_count: int,
    shape_length: int,
    key: str,
    path: str | None,
) -> Predictor:
    try:
        predictor = factory(description)
    except (ValueError, KeyError, TypeError) as e:
        raise DescriptionError(
            DescriptionErrorKind.MALFORMED,
            f"Predictor {key} is invalid: {e}",
            key=key,
            path=path,
        ) from e

    num_outputs = getattr(predictor, "num_outputs", None)
    if num_outputs is not None and num_outputs != variant_count:
        raise DescriptionError(
            DescriptionErrorKind.PREDICTOR_MISMATCH,
            f"Predictor {key} scores {num_outputs} variants, "
            f"{variant_count} profiles given",
            key=key,
            path=path,
        )

    num_features = getattr(predictor, "num_features", None)
    if num_features is not None and num_features > shape_length:
        raise DescriptionError(
            DescriptionErrorKind.MALFORMED,
            f"Predictor {key} splits on shape feature {num_features - 1}, "
            f"input shapes have {shape_length}",
            key=key,
            path=path,
        )
    return predictor


def build_models(
    description: Mapping[str, Any],
    queue: "Queue",
    *,
    predictor_factory: PredictorFactory = RandomForestPredictor,
    config: AutovariantConfig | None = None,
    path: str | None = None,
) -> dict[ModelKey, SelectionModel]:
    """Build SelectionModels from a parsed description.

    Args:
        description: Parsed description (operation -> dtype -> entry).
        queue: Queue the models are bound to.
        predictor_factory: Builds a predictor from its description.
        config: Program cache configuration of the built models.
        path: Source file, for error messages.

    Returns:
        ModelKey -> SelectionModel for every entry of the description.

    Raises:
        DescriptionError: On the first invalid entry.
    """
    models: dict[ModelKey, SelectionModel] = {}

    for op_name, by_dtype in description.items():
        operation = OPERATION_NAMES.get(op_name)
        if operation is None:
            raise DescriptionError(
                DescriptionErrorKind.UNKNOWN_OPERATION,
                f"Invalid operation: {op_name}",
                key=str(op_name),
                path=path,
            )
        if not isinstance(by_dtype, dict):
            raise DescriptionError(
                DescriptionErrorKind.MALFORMED,
                f"Entry {op_name} must map data types to profiles",
                key=op_name,
                path=path,
            )
        kind = VariantKind.for_operation(operation)

        for dtype_name, entry in by_dtype.items():
            key = f"{op_name}.{dtype_name}"
            dtype = DTYPE_NAMES.get(dtype_name)
            if dtype is None:
                raise DescriptionError(
                    DescriptionErrorKind.UNKNOWN_DTYPE,
                    f"Invalid datatype: {dtype_name}",
                    key=key,
                    path=path,
                )
            if not isinstance(entry, dict) or not isinstance(entry.get("profiles"), list):
                raise DescriptionError(
                    DescriptionErrorKind.MALFORMED,
                    f"Entry {key} needs a 'profiles' list",
                    key=key,
                    path=path,
                )
            profiles = entry["profiles"]
            if not profiles:
                raise DescriptionError(
                    DescriptionErrorKind.BAD_PROFILE,
                    f"Entry {key} has no profiles",
                    key=key,
                    path=path,
                )

            variants = [
                _profile(value, kind, f"{key}.profiles[{i}]", path)
                for i, value in enumerate(profiles)
            ]

            predictor = None
            if len(variants) > 1:
                if entry.get("predictor") is None:
                    raise DescriptionError(
                        DescriptionErrorKind.MISSING_PREDICTOR,
                        f"Entry {key} lists {len(variants)} profiles but no predictor",
                        key=key,
                        path=path,
                    )
                predictor = _predictor(
                    entry["predictor"],
                    predictor_factory,
                    len(variants),
                    len(get_template(kind).size_names),
                    f"{key}.predictor",
                    path,
                )

            models[ModelKey(operation, dtype)] = SelectionModel(
                variants, queue, predictor, config=config
            )
            logger.debug(
                "Imported %s: %d variant(s), predictor=%s",
                key,
                len(variants),
                predictor is not None,
            )

    return models


def import_models(
    path: str | Path,
    queue: "Queue",
    target: ModelMap,
    *,
    predictor_factory: PredictorFactory = RandomForestPredictor,
    config: AutovariantConfig | None = None,
) -> dict[ModelKey, SelectionModel]:
    """Import a description file into a model map.

    Entries of `target` covered by the description are replaced; others
    are left alone. On error `target` is not modified.

    Returns:
        The imported models.

    Raises:
        DescriptionError: If the description is unreadable or invalid.
    """
    description = load_description(path)
    models = build_models(
        description,
        queue,
        predictor_factory=predictor_factory,
        config=config,
        path=str(path),
    )
    target.update(models)
    logger.info("Imported %d model(s) from %s", len(models), path)
    return models


def try_import_models(
    path: str | Path,
    queue: "Queue",
    target: ModelMap,
    *,
    predictor_factory: PredictorFactory = RandomForestPredictor,
    config: AutovariantConfig | None = None,
) -> ImportResult:
    """Like import_models, but reports description errors in the result."""
    try:
        models = import_models(
            path,
            queue,
            target,
            predictor_factory=predictor_factory,
            config=config,
        )
    except DescriptionError as e:
        return ImportResult(error=e)
    return ImportResult(models=models)
