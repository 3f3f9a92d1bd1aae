"""
Variant cost predictors.

This module provides:
- Predictor: Protocol of cost models consulted by SelectionModel
- DecisionTree: One regression tree
- RandomForestPredictor: Averages the per-variant costs of its trees

Description format (one entry per tree, arrays indexed by node id,
leaves have children -1):

    {"trees": [{"children_left": [1, -1, -1],
                "children_right": [2, -1, -1],
                "feature": [0, -2, -2],
                "threshold": [4096.0, 0.0, 0.0],
                "value": [[0, 0], [1.0, 2.0], [3.0, 0.5]]}]}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import numpy as np

_TREE_KEYS = ("children_left", "children_right", "feature", "threshold", "value")


@runtime_checkable
class Predictor(Protocol):
    """Cost model: one predicted cost per variant for an input shape."""

    def predict(self, shape: Sequence[int]) -> Sequence[float]:
        ...


@dataclass(frozen=True, eq=False)
class DecisionTree:
    children_left: np.ndarray
    children_right: np.ndarray
    feature: np.ndarray
    threshold: np.ndarray
    value: np.ndarray

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DecisionTree":
        """Build a tree from its description.

        Raises:
            ValueError: If arrays are missing or inconsistent, or the nodes
                do not form a tree.
        """
        missing = [key for key in _TREE_KEYS if key not in data]
        if missing:
            raise ValueError(f"Tree description lacks {', '.join(missing)}")

        tree = cls(
            children_left=np.asarray(data["children_left"], dtype=np.int64),
            children_right=np.asarray(data["children_right"], dtype=np.int64),
            feature=np.asarray(data["feature"], dtype=np.int64),
            threshold=np.asarray(data["threshold"], dtype=np.float64),
            value=np.asarray(data["value"], dtype=np.float64),
        )
        node_count = len(tree.children_left)
        if node_count == 0:
            raise ValueError("Tree has no nodes")
        if tree.value.ndim != 2:
            raise ValueError("Tree values must be a list of per-variant cost lists")
        for key in _TREE_KEYS[1:]:
            if len(getattr(tree, key)) != node_count:
                raise ValueError(f"Tree array '{key}' has {len(getattr(tree, key))} "
                                 f"entries, expected {node_count}")
        children = np.concatenate([tree.children_left, tree.children_right])
        if children.max() >= node_count or children.min() < -1:
            raise ValueError("Tree child index out of range")

        leaves = tree.children_left == -1
        if not np.array_equal(leaves, tree.children_right == -1):
            raise ValueError("Tree node has exactly one child")
        # children follow their parent, so the tree has no cycles
        internal = np.flatnonzero(~leaves)
        if np.any(tree.children_left[internal] <= internal) or np.any(
            tree.children_right[internal] <= internal
        ):
            raise ValueError("Tree child index must follow its parent")
        if np.any(tree.feature[internal] < 0):
            raise ValueError("Tree split feature must be non-negative")
        return tree

    @property
    def num_outputs(self) -> int:
        return int(self.value.shape[1])

    @property
    def num_features(self) -> int:
        """Minimum input shape length the tree can be evaluated on."""
        internal = self.children_left != -1
        if not internal.any():
            return 0
        return int(self.feature[internal].max()) + 1

    def predict(self, x: np.ndarray) -> np.ndarray:
        node = 0
        while self.children_left[node] != -1:
            if x[self.feature[node]] <= self.threshold[node]:
                node = self.children_left[node]
            else:
                node = self.children_right[node]
        return self.value[node]


class RandomForestPredictor:
    """Random-forest regressor evaluated on input shapes.

    Only inference lives here; forests are trained offline and shipped
    in model descriptions.
    """

    def __init__(self, description: Mapping[str, Any]) -> None:
        """Build the forest from its description.

        Raises:
            ValueError: If the description is malformed.
        """
        if not isinstance(description, Mapping) or "trees" not in description:
            raise ValueError("Predictor description needs a 'trees' list")
        trees = [DecisionTree.from_dict(tree) for tree in description["trees"]]
        if not trees:
            raise ValueError("Predictor description has no trees")
        widths = {tree.num_outputs for tree in trees}
        if len(widths) != 1:
            raise ValueError(f"Trees disagree on output count: {sorted(widths)}")
        self._trees = trees
        self._num_outputs = widths.pop()

    @property
    def num_outputs(self) -> int:
        """Number of variants the forest scores."""
        return self._num_outputs

    @property
    def num_features(self) -> int:
        """Minimum input shape length the forest can be evaluated on."""
        return max(tree.num_features for tree in self._trees)

    @property
    def num_trees(self) -> int:
        return len(self._trees)

    def predict(self, shape: Sequence[int]) -> list[float]:
        x = np.asarray(shape, dtype=np.float64)
        costs = np.mean([tree.predict(x) for tree in self._trees], axis=0)
        return costs.tolist()
