"""
Python code generator for XGBoost tree ensemble models.

Architecture:
    XGBoost Model (.json/.ubj/.bin)
        → load_model / decode_ensemble     (model.py)
        → assemble_tree per tree           (tree.py)
        → emit tree functions as nested if/else
        → emit the aggregating scoring function
        → check_syntax                     (syntax.py)
        → .py source text

Each tree becomes a module-private function of nested if/else branches
that returns one leaf weight. Missing values (None or NaN) are tested
before the threshold comparison and follow the node's default_left route;
present values go left iff strictly below the threshold, so ties go right.

The scoring function adds every tree into the slot of its class, then adds
the base score to each slot. The generated module imports nothing.
"""

import keyword
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence, Union

from .errors import StructuralError
from .model import ModelInfo, ModelSource, load_model, load_trees, model_info
from .syntax import check_syntax
from .tree import AssembledTree, DecisionNode, LeafNode, Node, count_leaves, tree_depth

logger = logging.getLogger(__name__)

# Decision levels emitted inline per function. Deeper subtrees are moved into
# helper functions, which keeps the output under the parser's indentation
# limit (100 levels) and the emitter's recursion shallow.
MAX_NESTING = 32


def _is_identifier(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


def _float_literal(value: float) -> str:
    if math.isnan(value):
        return 'float("nan")'
    if math.isinf(value):
        return 'float("inf")' if value > 0 else 'float("-inf")'
    return repr(float(value))


def _comment_text(text: str) -> str:
    return " ".join(str(text).split())


def tree_function_name(function_name: str, index: int) -> str:
    return f"_{function_name}_tree_{index}"


def _subtree_name(tree_name: str, node: Node) -> str:
    return f"{tree_name}_node_{node.id}"


# ---------------------------------------------------------------------------
# Tree emission
# ---------------------------------------------------------------------------

def emit_node(
    node: Node,
    indent: int,
    tree_name: str,
    feature_names: Sequence[str] = (),
) -> str:
    """
    Render ``node`` and everything below it as statements that return the
    reached leaf weight from ``f``, the feature vector.
    """
    pad = "    " * indent

    if isinstance(node, LeafNode):
        return f"{pad}return {_float_literal(node.weight)}"

    if indent > MAX_NESTING:
        return f"{pad}return {_subtree_name(tree_name, node)}(f)"

    x = f"f[{node.feature_index}]"
    threshold = _float_literal(node.threshold)
    if node.default_left:
        # Missing shares the left branch with x < threshold. The `or` chain
        # stops before the comparison when x is missing.
        cond = f"{x} is None or {x} != {x} or {x} < {threshold}"
    else:
        cond = f"{x} is not None and {x} == {x} and {x} < {threshold}"

    comment = ""
    if node.feature_index < len(feature_names):
        comment = f"  # {_comment_text(feature_names[node.feature_index])}"

    return "\n".join([
        f"{pad}if {cond}:{comment}",
        emit_node(node.left, indent + 1, tree_name, feature_names),
        f"{pad}else:",
        emit_node(node.right, indent + 1, tree_name, feature_names),
    ])


def _spilled_subtrees(root: Node) -> list[DecisionNode]:
    """Decision nodes that emit_node replaces with a helper call."""
    found = []
    stack = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, LeafNode):
            continue
        if depth >= MAX_NESTING:
            found.append(node)
            continue
        stack.append((node.right, depth + 1))
        stack.append((node.left, depth + 1))
    return found


def emit_tree(
    tree: AssembledTree,
    function_name: str,
    feature_names: Sequence[str] = (),
) -> str:
    """Render one tree as ``_<function_name>_tree_<index>(f)`` plus helpers."""
    name = tree_function_name(function_name, tree.index)
    sections = []
    pending = [(name, tree.root)]
    while pending:
        fn_name, root = pending.pop()
        sections.append(
            f"def {fn_name}(f):\n" + emit_node(root, 1, name, feature_names)
        )
        pending.extend(
            (_subtree_name(name, node), node) for node in reversed(_spilled_subtrees(root))
        )
    if len(sections) > 1:
        logger.debug("tree %d: split into %d functions", tree.index, len(sections))
    return "\n\n\n".join(sections)


# ---------------------------------------------------------------------------
# Module emission
# ---------------------------------------------------------------------------

def _emit_header(
    info: ModelInfo,
    function_name: str,
    source_name: Optional[str],
    module_name: Optional[str],
) -> str:
    names_preview = ", ".join(_comment_text(n) for n in info.feature_names[:10])
    if len(info.feature_names) > 10:
        names_preview += ", ..."
    features = "unknown" if info.num_features is None else str(info.num_features)
    if names_preview:
        features += f"  [{names_preview}]"
    base = ", ".join(f"{b:.8g}" for b in info.base_score)
    best = "-" if info.best_iteration is None else str(info.best_iteration)
    output = "one float" if info.num_class == 1 else f"a list of {info.num_class} floats"

    lines = [
        "# Auto-generated Python scoring module for XGBoost model",
        "#",
    ]
    if module_name:
        lines.append(f"# Module:         {module_name}")
    lines += [
        f"# Source model:   {_comment_text(source_name or '<in-memory>')}",
        f"# Trees:          {info.num_trees}",
        f"# Features:       {features}",
        f"# Classes:        {info.num_class}",
        f"# Objective:      {_comment_text(info.objective) or 'unknown'}",
        f"# Base score:     {base}",
        f"# Best iteration: {best}",
        f"# Max depth:      {info.max_depth}",
        f"# Generated:      {datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')}",
        "#",
        f"# {function_name}(features) returns the raw margin as {output};",
        "# no objective link function is applied. Missing features are None",
        "# or NaN. The length of `features` is not checked.",
        "#",
        "# DO NOT EDIT - this file is auto-generated by xgb_codegen.",
    ]
    return "\n".join(lines) + "\n"


def _emit_score_function(
    trees: Sequence[AssembledTree],
    function_name: str,
    base_score: Sequence[float],
    num_class: int,
) -> str:
    bases = list(base_score) * num_class if len(base_score) == 1 else list(base_score)
    lines = [f"def {function_name}(features):"]

    if num_class == 1:
        lines.append('    """Raw score (margin) of one feature vector."""')
        lines.append("    total = 0.0")
        for tree in trees:
            lines.append(f"    total += {tree_function_name(function_name, tree.index)}(features)")
        lines.append(f"    return total + {_float_literal(bases[0])}")
    else:
        lines.append('    """Raw per-class scores (margins) of one feature vector."""')
        lines.append(f"    scores = [0.0] * {num_class}")
        for tree in trees:
            lines.append(
                f"    scores[{tree.class_index}] += "
                f"{tree_function_name(function_name, tree.index)}(features)"
            )
        lines.append("    return [")
        for c, base in enumerate(bases):
            lines.append(f"        scores[{c}] + {_float_literal(base)},")
        lines.append("    ]")

    return "\n".join(lines) + "\n"


def generate_source(
    trees: Sequence[AssembledTree],
    function_name: str = "score",
    base_score: Union[float, Sequence[float]] = 0.0,
    num_class: int = 1,
    info: Optional[ModelInfo] = None,
    source_name: Optional[str] = None,
    module_name: Optional[str] = None,
) -> str:
    """
    Compose and syntax-check a scoring module for ``trees``.

    Every check on the inputs runs before any text is produced.

    Raises:
        ValueError: invalid function/module name, class count or base score
            length.
        StructuralError: a tree's class index is outside ``[0, num_class)``.
        GenerationError: the composed text does not parse.
    """
    if not _is_identifier(function_name):
        raise ValueError(f"Invalid function name {function_name!r}: not a Python identifier")
    if module_name is not None and not _is_identifier(module_name):
        raise ValueError(f"Invalid module name {module_name!r}: not a Python identifier")
    if num_class < 1:
        raise ValueError(f"num_class must be >= 1, got {num_class}")

    if isinstance(base_score, (int, float)):
        base_score = (float(base_score),)
    base_score = tuple(float(b) for b in base_score)
    if len(base_score) not in (1, num_class):
        raise ValueError(f"Expected 1 or {num_class} base score values, got {len(base_score)}")

    for tree in trees:
        if not 0 <= tree.class_index < num_class:
            raise StructuralError(
                tree.index, f"class index {tree.class_index} outside [0, {num_class})"
            )

    if info is None:
        info = ModelInfo(
            num_trees=len(trees),
            num_features=None,
            num_class=num_class,
            base_score=base_score,
            objective="",
            feature_names=(),
            best_iteration=None,
            max_depth=max((tree_depth(t.root) for t in trees), default=0),
        )

    sections = [
        _emit_header(info, function_name, source_name, module_name),
        f"__all__ = [{function_name!r}]\n",
    ]
    for tree in trees:
        sections.append(emit_tree(tree, function_name, info.feature_names) + "\n")
        logger.debug(
            "Emitted tree %d (class %d, %d leaves)",
            tree.index, tree.class_index, count_leaves(tree.root),
        )
    sections.append(_emit_score_function(trees, function_name, base_score, num_class))

    code = "\n\n".join(sections)
    return check_syntax(code, filename=f"<{module_name or function_name}>")


class PythonCodeGenerator:
    """
    Generates a standalone Python scoring module from a trained XGBoost model.

    The generated code has no runtime dependencies. It contains one function
    per tree (nested if/else traversal), helpers for subtrees deeper than
    MAX_NESTING, and the public scoring function.

    Usage:
        gen = PythonCodeGenerator("models/model.json", function_name="score")
        gen.generate("generated/model_score.py")
        source = gen.generate_code(module_name="model_score")
    """

    def __init__(self, model: ModelSource, function_name: str = "score"):
        """
        Args:
            model: Path to an XGBoost model file (.json, .ubj, .bin), an
                xgboost.Booster, raw JSON bytes or a parsed model document
            function_name: Name of the generated scoring function
        """
        if not _is_identifier(function_name):
            raise ValueError(f"Invalid function name {function_name!r}: not a Python identifier")
        self.model_path = Path(model) if isinstance(model, (str, Path)) else None
        self.function_name = function_name
        self.ensemble = load_model(model)
        self.trees = load_trees(self.ensemble)
        self.model_info = model_info(self.ensemble, self.trees)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_code(self, module_name: Optional[str] = None) -> str:
        """Return the syntax-checked module source."""
        return generate_source(
            self.trees,
            function_name=self.function_name,
            base_score=self.model_info.base_score,
            num_class=self.model_info.num_class,
            info=self.model_info,
            source_name=self.model_path.name if self.model_path else None,
            module_name=module_name,
        )

    def generate(self, output_path: str, module_name: Optional[str] = None) -> str:
        """Generate a .py module at ``output_path``; the stem names the module."""
        if module_name is None:
            stem = Path(output_path).stem
            module_name = stem if _is_identifier(stem) else None
        code = self.generate_code(module_name)
        self._write(output_path, code)
        logger.info(
            "Generated Python: %s (%d trees, %d classes, max depth %d)",
            output_path, self.model_info.num_trees,
            self.model_info.num_class, self.model_info.max_depth,
        )
        return output_path

    @staticmethod
    def _write(path: str, content: str):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
