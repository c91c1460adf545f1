"""
Tree assembly: flat XGBoost node arrays → immutable binary trees.

XGBoost serializes each tree as parallel arrays indexed by node id:

    left_children[i], right_children[i]   child ids, -1 for "no child"
    split_indices[i]                      feature column tested at node i
    split_conditions[i]                   threshold (internal) / weight (leaf)
    default_left[i]                       branch taken when the feature is missing

Node 0 is the root. The overloaded split_conditions field is resolved once
here into a LeafNode or a DecisionNode, so nothing downstream ever looks at
the raw arrays again.
"""

import logging
from dataclasses import dataclass
from typing import Union

from .errors import DecodeError, StructuralError

logger = logging.getLogger(__name__)

NO_CHILD = -1

_NODE_ARRAYS = (
    "left_children",
    "right_children",
    "split_conditions",
    "split_indices",
    "default_left",
)


@dataclass(frozen=True)
class RawTree:
    """One tree exactly as decoded from the model document."""
    num_nodes: int
    left_children: tuple[int, ...]
    right_children: tuple[int, ...]
    split_conditions: tuple[float, ...]
    split_indices: tuple[int, ...]
    default_left: tuple[bool, ...]


@dataclass(frozen=True)
class LeafNode:
    id: int
    weight: float


@dataclass(frozen=True)
class DecisionNode:
    id: int
    feature_index: int
    threshold: float
    default_left: bool      # route taken when features[feature_index] is missing
    left: "Node"            # features[feature_index] < threshold
    right: "Node"           # features[feature_index] >= threshold


Node = Union[LeafNode, DecisionNode]


@dataclass(frozen=True)
class AssembledTree:
    """A rebuilt tree plus the output slot it contributes to."""
    index: int              # position in the ensemble
    root: Node
    class_index: int = 0


def assemble_tree(raw: RawTree, tree_index: int, class_index: int = 0) -> AssembledTree:
    """
    Rebuild one tree from its flat arrays.

    Raises:
        DecodeError: the node count is not positive or the arrays disagree
            on length.
        StructuralError: a node has exactly one child, a child id is out of
            range, a node is reachable twice (shared child or cycle), or a
            decision node has a negative feature index.
    """
    n = raw.num_nodes
    if n <= 0:
        raise DecodeError(
            f"trees[{tree_index}].tree_param.num_nodes",
            f"expected a positive node count, got {n}",
        )
    for name in _NODE_ARRAYS:
        size = len(getattr(raw, name))
        if size != n:
            raise DecodeError(
                f"trees[{tree_index}].{name}",
                f"expected {n} entries (num_nodes), got {size}",
            )

    # Pre-order walk from the root. Iterative, and every node may be entered
    # at most once, so bad links can neither loop nor blow the stack.
    order = []
    seen = [False] * n
    seen[0] = True
    stack = [0]
    while stack:
        i = stack.pop()
        order.append(i)
        left = raw.left_children[i]
        right = raw.right_children[i]

        if left == NO_CHILD and right == NO_CHILD:
            continue
        if left == NO_CHILD or right == NO_CHILD:
            raise StructuralError(
                tree_index,
                f"only one child present (left={left}, right={right})",
                node=i,
            )
        if raw.split_indices[i] < 0:
            raise StructuralError(
                tree_index,
                f"negative split feature index {raw.split_indices[i]}",
                node=i,
            )

        for child in (left, right):
            if not 0 <= child < n:
                raise StructuralError(
                    tree_index,
                    f"child index {child} outside [0, {n})",
                    node=i,
                )
            if seen[child]:
                raise StructuralError(
                    tree_index,
                    f"node {child} is reachable more than once",
                    node=i,
                )
            seen[child] = True
            stack.append(child)

    # Children come after their parent in pre-order, so walking it backwards
    # builds every child before the node that owns it.
    arena: list = [None] * n
    for i in reversed(order):
        left = raw.left_children[i]
        if left == NO_CHILD:
            arena[i] = LeafNode(id=i, weight=float(raw.split_conditions[i]))
        else:
            arena[i] = DecisionNode(
                id=i,
                feature_index=int(raw.split_indices[i]),
                threshold=float(raw.split_conditions[i]),
                default_left=bool(raw.default_left[i]),
                left=arena[left],
                right=arena[raw.right_children[i]],
            )

    if len(order) != n:
        logger.debug(
            "tree %d: ignoring %d unreachable node slot(s)",
            tree_index, n - len(order),
        )

    return AssembledTree(index=tree_index, root=arena[0], class_index=class_index)


def tree_depth(node: Node) -> int:
    """Number of decision levels between the root and its deepest leaf."""
    deepest = 0
    stack = [(node, 0)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, LeafNode):
            deepest = max(deepest, depth)
        else:
            stack.append((current.left, depth + 1))
            stack.append((current.right, depth + 1))
    return deepest


def count_leaves(node: Node) -> int:
    count = 0
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, LeafNode):
            count += 1
        else:
            stack.extend((current.left, current.right))
    return count
