"""
Builders for XGBoost-style JSON model documents and a plain tree walk used
as the reference scorer.
"""
import math
from typing import List, Optional, Sequence

import numpy as np

from xgb_codegen import DecisionNode


def tree_doc(
    left: Sequence[int],
    right: Sequence[int],
    conditions: Sequence[float],
    indices: Sequence[int],
    default_left: Sequence[int],
) -> dict:
    return {
        "tree_param": {"num_nodes": str(len(left)), "size_leaf_vector": "1"},
        "left_children": list(left),
        "right_children": list(right),
        "split_conditions": list(conditions),
        "split_indices": list(indices),
        "default_left": list(default_left),
        "split_type": [0] * len(left),
    }


def stump(feature: int, threshold: float, left_value: float, right_value: float, default_left: bool = True) -> dict:
    return tree_doc(
        left=[1, -1, -1],
        right=[2, -1, -1],
        conditions=[threshold, left_value, right_value],
        indices=[feature, 0, 0],
        default_left=[int(default_left), 0, 0],
    )


def leaf(value: float) -> dict:
    return tree_doc([-1], [-1], [value], [0], [0])


def model_doc(
    trees: List[dict],
    base_score: object = "5E-1",
    num_class: object = "0",
    tree_info: Optional[List[int]] = None,
    best_iteration: Optional[object] = None,
    iteration_indptr: Optional[List[int]] = None,
    num_feature: object = "4",
) -> dict:
    model = {
        "trees": trees,
        "tree_info": [0] * len(trees) if tree_info is None else tree_info,
    }
    if iteration_indptr is not None:
        model["iteration_indptr"] = iteration_indptr
    attributes = {}
    if best_iteration is not None:
        attributes["best_iteration"] = best_iteration
    return {
        "learner": {
            "attributes": attributes,
            "feature_names": [],
            "gradient_booster": {"name": "gbtree", "model": model},
            "learner_model_param": {
                "base_score": base_score,
                "num_class": num_class,
                "num_feature": num_feature,
            },
            "objective": {"name": "reg:squarederror"},
        },
        "version": [2, 0, 3],
    }


def random_tree(rng: np.random.Generator, max_depth: int, num_features: int) -> dict:
    """Random strict binary tree, node ids assigned breadth-first like XGBoost."""
    left, right, conditions, indices, default_left = [], [], [], [], []

    def new_node() -> int:
        left.append(-1)
        right.append(-1)
        conditions.append(0.0)
        indices.append(0)
        default_left.append(0)
        return len(left) - 1

    queue = [(new_node(), 0)]
    while queue:
        i, depth = queue.pop(0)
        if depth < max_depth and (depth == 0 or rng.random() < 0.7):
            left[i], right[i] = new_node(), new_node()
            indices[i] = int(rng.integers(num_features))
            conditions[i] = round(float(rng.normal()), 2)
            default_left[i] = int(rng.integers(2))
            queue.append((left[i], depth + 1))
            queue.append((right[i], depth + 1))
        else:
            conditions[i] = round(float(rng.normal()), 4)

    return tree_doc(left, right, conditions, indices, default_left)


def random_features(rng: np.random.Generator, num_features: int) -> list:
    """Feature vector mixing normal values, exact split-style values and missing ones."""
    values = []
    for _ in range(num_features):
        draw = rng.random()
        if draw < 0.1:
            values.append(None)
        elif draw < 0.2:
            values.append(float("nan"))
        elif draw < 0.4:
            values.append(round(float(rng.normal()), 2))
        else:
            values.append(float(rng.normal()))
    return values


def reference_score(node, features: Sequence) -> float:
    """Walk from ``node`` to a leaf the way XGBoost routes a sample."""
    while isinstance(node, DecisionNode):
        value = features[node.feature_index]
        if value is None or math.isnan(value):
            go_left = node.default_left
        else:
            go_left = value < node.threshold
        node = node.left if go_left else node.right
    return node.weight
