"""Model Description Importer Tests for Autovariant."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from autovariant.enums import FetchPolicy, NumericType, OperationType
from autovariant.exceptions import DescriptionError, DescriptionErrorKind
from autovariant.importer import (
    build_models,
    import_models,
    load_description,
    try_import_models,
)
from autovariant.model import Choice, ModelKey, SelectionModel
from autovariant.predictor import RandomForestPredictor
from autovariant.variants import PROFILE_ARITY, VariantKind, vaxpy

from fixtures.backend import FakeQueue
from fixtures.expressions import gemm_batch

GEMM_NN = ModelKey(OperationType.MATRIX_PRODUCT_NN, NumericType.FLOAT)

PROFILE_A = [1, 8, 8, 8, 4, 1, 4, 0, 0, 8, 8]
PROFILE_B = [1, 16, 8, 16, 2, 1, 2, 1, 1, 8, 8]


class FixedPredictor:
    """Predictor factory stand-in scoring every shape the same."""

    def __init__(self, description: Any) -> None:
        self.description = description
        self.num_outputs = len(description["costs"])

    def predict(self, shape):
        return self.description["costs"]


def write_json(path: Path, description: Any) -> Path:
    path.write_text(json.dumps(description))
    return path


def two_profile_description(costs=(2.0, 1.0)) -> dict:
    return {
        "gemmNN": {
            "float32": {
                "profiles": [PROFILE_A, PROFILE_B],
                "predictor": {"costs": list(costs)},
            }
        }
    }


class TestLoadDescription:
    """Tests for load_description()."""

    def test_json(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "models.json", {"vaxpy": {}})
        assert load_description(path) == {"vaxpy": {}}

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "models.yaml"
        path.write_text("vaxpy:\n  float32:\n    profiles:\n      - [1, 64, 128, 1]\n")
        assert load_description(path)["vaxpy"]["float32"]["profiles"] == [[1, 64, 128, 1]]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            load_description(tmp_path / "missing.json")
        assert excinfo.value.kind is DescriptionErrorKind.UNREADABLE

    def test_unparsable(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text('{"vaxpy": [1, 2')
        with pytest.raises(DescriptionError) as excinfo:
            load_description(path)
        assert excinfo.value.kind is DescriptionErrorKind.MALFORMED

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "list.json", [1, 2, 3])
        with pytest.raises(DescriptionError) as excinfo:
            load_description(path)
        assert excinfo.value.kind is DescriptionErrorKind.MALFORMED


class TestBuildModels:
    """Tests for build_models()."""

    def test_single_profile(self, queue: FakeQueue) -> None:
        models = build_models(
            {"vaxpy": {"float64": {"profiles": [[4, 128, 64, 2]]}}}, queue
        )
        model = models[ModelKey(OperationType.VECTOR_AXPY, NumericType.DOUBLE)]

        assert model.variants == (vaxpy(4, 128, 64, FetchPolicy.GLOBAL_CONTIGUOUS),)
        assert model.predictor is None
        assert model.queue is queue

    def test_single_profile_ignores_predictor(self, queue: FakeQueue) -> None:
        models = build_models(
            {"dot": {"float32": {"profiles": [[1, 64, 128, 1]], "predictor": {"trees": []}}}},
            queue,
        )
        model = models[ModelKey(OperationType.REDUCTION, NumericType.FLOAT)]
        assert model.predictor is None

    def test_profiles_and_predictor(self, queue: FakeQueue) -> None:
        models = build_models(
            two_profile_description(), queue, predictor_factory=FixedPredictor
        )
        model = models[GEMM_NN]

        assert len(model.variants) == 2
        assert model.variants[1].kind is VariantKind.MPRODUCT_NN
        assert model.variants[1].params.a_fetch is FetchPolicy.GLOBAL_STRIDED
        assert isinstance(model.predictor, FixedPredictor)

    @pytest.mark.parametrize("name, operation", [
        ("vaxpy", OperationType.VECTOR_AXPY),
        ("dot", OperationType.REDUCTION),
        ("maxpy", OperationType.MATRIX_AXPY),
        ("gemvN", OperationType.ROW_REDUCTION),
        ("gemvT", OperationType.COL_REDUCTION),
        ("gemmNN", OperationType.MATRIX_PRODUCT_NN),
        ("gemmNT", OperationType.MATRIX_PRODUCT_NT),
        ("gemmTN", OperationType.MATRIX_PRODUCT_TN),
        ("gemmTT", OperationType.MATRIX_PRODUCT_TT),
    ])
    def test_operation_names(
        self, queue: FakeQueue, name: str, operation: OperationType
    ) -> None:
        kind = VariantKind.for_operation(operation)
        arity = {4: [1, 64, 128, 1], 5: [1, 8, 8, 16, 1], 6: [1, 8, 8, 8, 8, 1],
                 11: PROFILE_A}
        profile = arity[PROFILE_ARITY[kind]]
        models = build_models({name: {"float32": {"profiles": [profile]}}}, queue)
        assert list(models) == [ModelKey(operation, NumericType.FLOAT)]

    def test_unknown_operation(self, queue: FakeQueue) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models({"gemmXX": {}}, queue)
        assert excinfo.value.kind is DescriptionErrorKind.UNKNOWN_OPERATION
        assert excinfo.value.key == "gemmXX"

    def test_unknown_dtype(self, queue: FakeQueue) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models({"vaxpy": {"float16": {"profiles": [[1, 64, 128, 1]]}}}, queue)
        assert excinfo.value.kind is DescriptionErrorKind.UNKNOWN_DTYPE
        assert excinfo.value.key == "vaxpy.float16"

    @pytest.mark.parametrize("profile", [
        [1, 64, 128],
        [1, 64, 128, 1, 0],
        [1, 64, "128", 1],
        [1, 64, 128, True],
        [1, 64, 128, 5],
        [3, 64, 128, 1],
        [1, 0, 128, 1],
        "1, 64, 128, 1",
    ])
    def test_bad_profile(self, queue: FakeQueue, profile: Any) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models({"vaxpy": {"float32": {"profiles": [profile]}}}, queue)
        assert excinfo.value.kind is DescriptionErrorKind.BAD_PROFILE

    def test_empty_profiles(self, queue: FakeQueue) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models({"vaxpy": {"float32": {"profiles": []}}}, queue)
        assert excinfo.value.kind is DescriptionErrorKind.BAD_PROFILE

    @pytest.mark.parametrize("entry", [{}, {"profiles": 3}, [[1, 64, 128, 1]]])
    def test_malformed_entry(self, queue: FakeQueue, entry: Any) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models({"vaxpy": {"float32": entry}}, queue)
        assert excinfo.value.kind is DescriptionErrorKind.MALFORMED

    def test_missing_predictor(self, queue: FakeQueue) -> None:
        description = two_profile_description()
        del description["gemmNN"]["float32"]["predictor"]
        with pytest.raises(DescriptionError) as excinfo:
            build_models(description, queue)
        assert excinfo.value.kind is DescriptionErrorKind.MISSING_PREDICTOR

    def test_predictor_width_mismatch(self, queue: FakeQueue) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models(
                two_profile_description(costs=(1.0, 2.0, 3.0)),
                queue,
                predictor_factory=FixedPredictor,
            )
        assert excinfo.value.kind is DescriptionErrorKind.PREDICTOR_MISMATCH

    def test_malformed_forest(self, queue: FakeQueue) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models(
                two_profile_description(),
                queue,
                predictor_factory=RandomForestPredictor,
            )
        assert excinfo.value.kind is DescriptionErrorKind.MALFORMED

    def test_random_forest_predictor(self, queue: FakeQueue) -> None:
        description = two_profile_description()
        description["gemmNN"]["float32"]["predictor"] = {"trees": [{
            "children_left": [-1],
            "children_right": [-1],
            "feature": [-2],
            "threshold": [0.0],
            "value": [[2.0, 1.0]],
        }]}
        model = build_models(description, queue)[GEMM_NN]
        assert model.choose((64, 64, 64)) == Choice(1, "predictor")

    def test_forest_split_beyond_shape(self, queue: FakeQueue) -> None:
        """Matrix products have three shape features: M, N and K."""
        description = two_profile_description()
        description["gemmNN"]["float32"]["predictor"] = {"trees": [{
            "children_left": [1, -1, -1],
            "children_right": [2, -1, -1],
            "feature": [3, -2, -2],
            "threshold": [64.0, 0.0, 0.0],
            "value": [[0.0, 0.0], [2.0, 1.0], [1.0, 2.0]],
        }]}
        with pytest.raises(DescriptionError) as excinfo:
            build_models(description, queue)
        assert excinfo.value.kind is DescriptionErrorKind.MALFORMED
        assert excinfo.value.key == "gemmNN.float32.predictor"

    def test_dot_profile_local_size_power_of_two(self, queue: FakeQueue) -> None:
        with pytest.raises(DescriptionError) as excinfo:
            build_models({"dot": {"float32": {"profiles": [[1, 48, 128, 1]]}}}, queue)
        assert excinfo.value.kind is DescriptionErrorKind.BAD_PROFILE
        assert excinfo.value.key == "dot.float32.profiles[0]"


class TestImportModels:
    """Tests for import_models() and try_import_models()."""

    def test_round_trip_selects_predicted_variant(
        self, queue: FakeQueue, tmp_path: Path
    ) -> None:
        """Two profiles plus a predictor scoring [2.0, 1.0] execute variant 1."""
        path = write_json(tmp_path / "models.json", two_profile_description())
        target: dict[ModelKey, SelectionModel] = {}

        import_models(path, queue, target, predictor_factory=FixedPredictor)
        choice = target[GEMM_NN].execute(gemm_batch(queue.context))

        assert choice == Choice(1, "predictor")
        assert queue.last.entry_point == "matrix_product_nn_1"

    def test_replaces_only_covered_entries(self, queue: FakeQueue, tmp_path: Path) -> None:
        path = write_json(tmp_path / "models.json", two_profile_description())
        untouched_key = ModelKey(OperationType.REDUCTION, NumericType.FLOAT)
        untouched = SelectionModel([vaxpy(1, 64, 128, FetchPolicy.LOCAL)], queue)
        replaced = SelectionModel([vaxpy(1, 64, 128, FetchPolicy.LOCAL)], queue)
        target = {untouched_key: untouched, GEMM_NN: replaced}

        imported = import_models(path, queue, target, predictor_factory=FixedPredictor)

        assert target[untouched_key] is untouched
        assert target[GEMM_NN] is imported[GEMM_NN]
        assert target[GEMM_NN] is not replaced

    def test_error_leaves_target_unmodified(self, queue: FakeQueue, tmp_path: Path) -> None:
        """A bad entry after a good one imports nothing."""
        description = two_profile_description()
        description["gemmXX"] = {"float32": {"profiles": [PROFILE_A]}}
        path = write_json(tmp_path / "models.json", description)
        original = SelectionModel([vaxpy(1, 64, 128, FetchPolicy.LOCAL)], queue)
        target = {GEMM_NN: original}

        with pytest.raises(DescriptionError):
            import_models(path, queue, target, predictor_factory=FixedPredictor)

        assert target == {GEMM_NN: original}

    def test_try_import_success(self, queue: FakeQueue, tmp_path: Path) -> None:
        path = write_json(tmp_path / "models.json", two_profile_description())
        target: dict[ModelKey, SelectionModel] = {}

        result = try_import_models(path, queue, target, predictor_factory=FixedPredictor)

        assert result.ok
        assert result.error is None
        assert list(result.models) == [GEMM_NN]
        assert GEMM_NN in target

    def test_try_import_failure(self, queue: FakeQueue, tmp_path: Path) -> None:
        target: dict[ModelKey, SelectionModel] = {}

        result = try_import_models(tmp_path / "missing.json", queue, target)

        assert not result.ok
        assert result.error.kind is DescriptionErrorKind.UNREADABLE
        assert result.models == {}
        assert target == {}
