"""
Autovariant - Runtime Kernel Variant Selection and Autotuning

Picks, compiles and runs the best of several parameterized kernel
variants for each symbolic operation, per device queue.

Main APIs:
- av.get_model(): SelectionModel of an (operation, dtype) pair on a queue
- SelectionModel.execute(): Select a variant and submit it
- SelectionModel.tune(): Time every variant and record the fastest
- av.import_models(): Load models from a declarative description
- av.fingerprint(): Structural fingerprint of an expression batch
"""

__version__ = "0.1.0"

from autovariant.config import AutovariantConfig
from autovariant.enums import (
    BatchOrder,
    BindingPolicy,
    FetchPolicy,
    NumericType,
    OperationType,
)
from autovariant.exceptions import (
    AutovariantError,
    ContextMismatchError,
    DescriptionError,
    DescriptionErrorKind,
    FingerprintOverflowError,
    ModelNotFoundError,
    PredictorError,
)
from autovariant.fingerprint import fingerprint
from autovariant.importer import (
    ImportResult,
    build_models,
    import_models,
    load_description,
    try_import_models,
)
from autovariant.model import Choice, ModelKey, SelectionModel, TuneResult
from autovariant.predictor import RandomForestPredictor
from autovariant.programs import CompiledProgramSet, ProgramCache
from autovariant.registry import (
    ModelRegistry,
    default_models,
    get_model,
    get_model_map,
    get_registry,
)
from autovariant.symbolic import Expression, ExpressionBatch
from autovariant.variants import Variant, VariantKind

__all__ = [
    "__version__",
    # Config
    "AutovariantConfig",
    # Enums
    "BatchOrder",
    "BindingPolicy",
    "FetchPolicy",
    "NumericType",
    "OperationType",
    # Exceptions
    "AutovariantError",
    "ContextMismatchError",
    "DescriptionError",
    "DescriptionErrorKind",
    "FingerprintOverflowError",
    "ModelNotFoundError",
    "PredictorError",
    # Symbolic
    "Expression",
    "ExpressionBatch",
    "fingerprint",
    # Variants and programs
    "CompiledProgramSet",
    "ProgramCache",
    "Variant",
    "VariantKind",
    # Models
    "Choice",
    "ModelKey",
    "RandomForestPredictor",
    "SelectionModel",
    "TuneResult",
    # Import
    "ImportResult",
    "build_models",
    "import_models",
    "load_description",
    "try_import_models",
    # Registry
    "ModelRegistry",
    "default_models",
    "get_model",
    "get_model_map",
    "get_registry",
]
