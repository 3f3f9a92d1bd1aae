"""Random Forest Predictor Tests for Autovariant."""
from __future__ import annotations

import pytest

from autovariant.predictor import DecisionTree, Predictor, RandomForestPredictor


def stump(threshold: float, left: list[float], right: list[float], feature: int = 0) -> dict:
    """Single split on one feature."""
    return {
        "children_left": [1, -1, -1],
        "children_right": [2, -1, -1],
        "feature": [feature, -2, -2],
        "threshold": [threshold, 0.0, 0.0],
        "value": [[0.0] * len(left), left, right],
    }


def leaf(costs: list[float]) -> dict:
    return {
        "children_left": [-1],
        "children_right": [-1],
        "feature": [-2],
        "threshold": [0.0],
        "value": [costs],
    }


class TestDecisionTree:
    """Tests for DecisionTree."""

    def test_split(self) -> None:
        tree = DecisionTree.from_dict(stump(4096, [1.0, 2.0], [3.0, 0.5]))
        assert list(tree.predict([1000])) == [1.0, 2.0]
        assert list(tree.predict([4096])) == [1.0, 2.0]
        assert list(tree.predict([5000])) == [3.0, 0.5]
        assert tree.num_outputs == 2

    def test_split_on_second_feature(self) -> None:
        tree = DecisionTree.from_dict(stump(10, [1.0], [2.0], feature=1))
        assert list(tree.predict([1_000_000, 5])) == [1.0]

    def test_missing_arrays(self) -> None:
        data = stump(1, [1.0], [2.0])
        del data["threshold"]
        with pytest.raises(ValueError, match="threshold"):
            DecisionTree.from_dict(data)

    def test_inconsistent_lengths(self) -> None:
        data = stump(1, [1.0], [2.0])
        data["feature"] = [0, -2]
        with pytest.raises(ValueError, match="feature"):
            DecisionTree.from_dict(data)

    def test_child_out_of_range(self) -> None:
        data = stump(1, [1.0], [2.0])
        data["children_right"] = [7, -1, -1]
        with pytest.raises(ValueError, match="out of range"):
            DecisionTree.from_dict(data)

    def test_rejects_cycle(self) -> None:
        """A node pointing back at itself would loop forever in predict."""
        data = {
            "children_left": [0, -1],
            "children_right": [1, -1],
            "feature": [0, -2],
            "threshold": [1.0, 0.0],
            "value": [[0.0], [1.0]],
        }
        with pytest.raises(ValueError, match="follow its parent"):
            DecisionTree.from_dict(data)

    def test_rejects_one_sided_node(self) -> None:
        data = stump(1, [1.0], [2.0])
        data["children_right"] = [-1, -1, -1]
        with pytest.raises(ValueError, match="exactly one child"):
            DecisionTree.from_dict(data)

    def test_rejects_negative_split_feature(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            DecisionTree.from_dict(stump(1, [1.0], [2.0], feature=-1))

    def test_num_features(self) -> None:
        assert DecisionTree.from_dict(leaf([1.0])).num_features == 0
        assert DecisionTree.from_dict(stump(1, [1.0], [2.0])).num_features == 1
        assert DecisionTree.from_dict(stump(1, [1.0], [2.0], feature=2)).num_features == 3

    def test_values_must_be_2d(self) -> None:
        data = leaf([1.0])
        data["value"] = [1.0]
        with pytest.raises(ValueError):
            DecisionTree.from_dict(data)


class TestRandomForestPredictor:
    """Tests for RandomForestPredictor."""

    def test_is_predictor(self) -> None:
        assert isinstance(RandomForestPredictor({"trees": [leaf([1.0, 2.0])]}), Predictor)

    def test_averages_trees(self) -> None:
        forest = RandomForestPredictor({
            "trees": [leaf([1.0, 4.0]), leaf([3.0, 0.0])],
        })
        assert forest.predict((128,)) == [2.0, 2.0]
        assert forest.num_trees == 2
        assert forest.num_outputs == 2

    def test_shape_dependent(self) -> None:
        forest = RandomForestPredictor({"trees": [stump(4096, [1.0, 2.0], [3.0, 0.5])]})
        assert forest.predict((100,)) == [1.0, 2.0]
        assert forest.predict((100_000,)) == [3.0, 0.5]

    @pytest.mark.parametrize("description", [
        {},
        {"trees": []},
        [leaf([1.0])],
    ])
    def test_malformed(self, description) -> None:
        with pytest.raises(ValueError):
            RandomForestPredictor(description)

    def test_trees_disagree_on_width(self) -> None:
        with pytest.raises(ValueError, match="disagree"):
            RandomForestPredictor({"trees": [leaf([1.0]), leaf([1.0, 2.0])]})

    def test_num_features_is_widest_tree(self) -> None:
        forest = RandomForestPredictor({
            "trees": [leaf([1.0]), stump(10, [1.0], [2.0], feature=1)],
        })
        assert forest.num_features == 2
