"""
Ensemble loading: XGBoost JSON model document → assembled trees.

Layout read (XGBoost >= 1.0 JSON / UBJSON converted to JSON):

    learner
      learner_model_param   base_score, num_class, num_feature
      attributes            best_iteration   (only with early stopping)
      feature_names         optional, used for comments only
      objective             name
      gradient_booster      name == "gbtree"
        model               trees[], tree_info[], iteration_indptr[] (>= 2.0)

Scalars are usually serialized as strings ("5E-1", "3"), so every numeric
field goes through an explicit parser that names the field on failure.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import xgboost as xgb

from .errors import DecodeError, StructuralError
from .tree import AssembledTree, RawTree, assemble_tree, tree_depth

logger = logging.getLogger(__name__)

_PARAM = "learner.learner_model_param"
_MODEL = "learner.gradient_booster.model"


@dataclass(frozen=True)
class RawEnsemble:
    """Decoded model document, before any tree is assembled."""
    trees: tuple[RawTree, ...]
    tree_info: tuple[int, ...]          # class slot of each tree, aligned with trees
    base_score: tuple[float, ...]       # one value (broadcast) or one per class
    num_class: int                      # >= 1; XGBoost's 0 is normalized to 1
    best_iteration: Optional[int] = None
    iteration_indptr: Optional[tuple[int, ...]] = None
    num_feature: Optional[int] = None
    objective: str = ""
    feature_names: tuple[str, ...] = ()


@dataclass
class ModelInfo:
    """Model metadata embedded in the generated module header."""
    num_trees: int              # after best_iteration truncation
    num_features: Optional[int]
    num_class: int
    base_score: tuple[float, ...]
    objective: str
    feature_names: tuple[str, ...]
    best_iteration: Optional[int]
    max_depth: int


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------

def _get(document: Any, path: str, prefix: str = "") -> Any:
    node = document
    keys = path.split(".")
    for i, key in enumerate(keys):
        if not isinstance(node, dict) or key not in node:
            field = ".".join(keys[: i + 1])
            raise DecodeError(f"{prefix}.{field}" if prefix else field, "missing required field")
        node = node[key]
    return node


def _get_optional(document: Any, path: str) -> Any:
    try:
        return _get(document, path)
    except DecodeError:
        return None


def _parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise DecodeError(field, f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise DecodeError(field, f"expected an integer, got {value!r}")


def _parse_float(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise DecodeError(field, f"expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise DecodeError(field, f"expected a number, got {value!r}")


def _parse_flag(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise DecodeError(field, f"expected 0/1 or a boolean, got {value!r}")


def _parse_array(value: Any, field: str, parse: Callable[[Any, str], Any]) -> tuple:
    if not isinstance(value, list):
        raise DecodeError(field, f"expected an array, got {type(value).__name__}")
    return tuple(parse(v, f"{field}[{i}]") for i, v in enumerate(value))


def _parse_base_score(value: Any, field: str) -> tuple[float, ...]:
    """
    Accept a number, a numeric string, or the bracketed vector form
    ("[5E-1]", "[1E-1,2E-1,7E-1]") written by newer XGBoost releases.
    """
    if isinstance(value, list):
        scores = _parse_array(value, field, _parse_float)
    elif isinstance(value, str) and value.strip().startswith("["):
        inner = value.strip()
        if not inner.endswith("]"):
            raise DecodeError(field, f"unterminated vector {value!r}")
        parts = [p for p in inner[1:-1].split(",") if p.strip()]
        scores = tuple(_parse_float(p, f"{field}[{i}]") for i, p in enumerate(parts))
    else:
        return (_parse_float(value, field),)

    if not scores:
        raise DecodeError(field, "empty base score vector")
    return scores


# ---------------------------------------------------------------------------
# Document decoding
# ---------------------------------------------------------------------------

def _decode_tree(tree_doc: Any, prefix: str) -> RawTree:
    if not isinstance(tree_doc, dict):
        raise DecodeError(prefix, f"expected an object, got {type(tree_doc).__name__}")

    num_nodes = _parse_int(
        _get(tree_doc, "tree_param.num_nodes", prefix), f"{prefix}.tree_param.num_nodes"
    )

    leaf_vector = tree_doc.get("tree_param", {}).get("size_leaf_vector")
    if leaf_vector is not None and _parse_int(leaf_vector, f"{prefix}.tree_param.size_leaf_vector") > 1:
        raise DecodeError(
            f"{prefix}.tree_param.size_leaf_vector",
            "vector-leaf (multi-target) trees are not supported",
        )

    split_type = tree_doc.get("split_type")
    if split_type is not None:
        kinds = _parse_array(split_type, f"{prefix}.split_type", _parse_int)
        if any(kinds):
            raise DecodeError(f"{prefix}.split_type", "categorical splits are not supported")

    def array(name: str, parse: Callable[[Any, str], Any]) -> tuple:
        return _parse_array(_get(tree_doc, name, prefix), f"{prefix}.{name}", parse)

    return RawTree(
        num_nodes=num_nodes,
        left_children=array("left_children", _parse_int),
        right_children=array("right_children", _parse_int),
        split_conditions=array("split_conditions", _parse_float),
        split_indices=array("split_indices", _parse_int),
        default_left=array("default_left", _parse_flag),
    )


def decode_ensemble(document: dict) -> RawEnsemble:
    """
    Decode an XGBoost JSON model document.

    Raises:
        DecodeError: a required field is missing or malformed. The error's
            ``field`` attribute holds the dotted path of the offending field.
    """
    booster_name = _get_optional(document, "learner.gradient_booster.name")
    if booster_name is not None and booster_name != "gbtree":
        raise DecodeError(
            "learner.gradient_booster.name",
            f"unsupported booster {booster_name!r}, only 'gbtree' can be compiled",
        )

    base_score = _parse_base_score(_get(document, f"{_PARAM}.base_score"), f"{_PARAM}.base_score")

    num_class = _parse_int(_get(document, f"{_PARAM}.num_class"), f"{_PARAM}.num_class")
    if num_class < 0:
        raise DecodeError(f"{_PARAM}.num_class", f"expected a non-negative class count, got {num_class}")
    num_class = max(num_class, 1)

    if len(base_score) not in (1, num_class):
        raise DecodeError(
            f"{_PARAM}.base_score",
            f"expected 1 or {num_class} values, got {len(base_score)}",
        )

    num_feature = _get_optional(document, f"{_PARAM}.num_feature")
    if num_feature is not None:
        num_feature = _parse_int(num_feature, f"{_PARAM}.num_feature")

    best_iteration = _get_optional(document, "learner.attributes.best_iteration")
    if best_iteration == "":
        best_iteration = None
    if best_iteration is not None:
        best_iteration = _parse_int(best_iteration, "learner.attributes.best_iteration")

    objective = _get_optional(document, "learner.objective.name") or ""

    feature_names = _get_optional(document, "learner.feature_names") or []
    if not isinstance(feature_names, list):
        raise DecodeError("learner.feature_names", f"expected an array, got {type(feature_names).__name__}")

    trees_doc = _get(document, f"{_MODEL}.trees")
    if not isinstance(trees_doc, list):
        raise DecodeError(f"{_MODEL}.trees", f"expected an array, got {type(trees_doc).__name__}")
    trees = tuple(_decode_tree(t, f"{_MODEL}.trees[{i}]") for i, t in enumerate(trees_doc))

    tree_info = _parse_array(_get(document, f"{_MODEL}.tree_info"), f"{_MODEL}.tree_info", _parse_int)
    if len(tree_info) != len(trees):
        raise DecodeError(
            f"{_MODEL}.tree_info",
            f"expected {len(trees)} entries (one per tree), got {len(tree_info)}",
        )

    indptr = _get_optional(document, f"{_MODEL}.iteration_indptr")
    if indptr is not None:
        indptr = _parse_array(indptr, f"{_MODEL}.iteration_indptr", _parse_int)
        monotonic = all(a <= b for a, b in zip(indptr, indptr[1:]))
        if not indptr or indptr[0] != 0 or indptr[-1] != len(trees) or not monotonic:
            raise DecodeError(
                f"{_MODEL}.iteration_indptr",
                f"not a valid round index for {len(trees)} trees: {list(indptr)}",
            )

    return RawEnsemble(
        trees=trees,
        tree_info=tree_info,
        base_score=base_score,
        num_class=num_class,
        best_iteration=best_iteration,
        iteration_indptr=indptr,
        num_feature=num_feature,
        objective=str(objective),
        feature_names=tuple(str(name) for name in feature_names),
    )


# ---------------------------------------------------------------------------
# Assembly & truncation
# ---------------------------------------------------------------------------

def _kept_tree_count(ensemble: RawEnsemble) -> int:
    total = len(ensemble.trees)
    k = ensemble.best_iteration
    if k is None:
        # Not trained with early stopping: every tree counts.
        return total

    indptr = ensemble.iteration_indptr
    rounds = len(indptr) - 1 if indptr else total
    if not 0 <= k < rounds:
        raise DecodeError(
            "learner.attributes.best_iteration",
            f"{k} is outside the model's {rounds} boosting round(s)",
        )
    return indptr[k + 1] if indptr else k + 1


def load_trees(ensemble: RawEnsemble) -> list[AssembledTree]:
    """
    Assemble every tree, attach its class slot and drop the rounds after
    ``best_iteration``.

    All trees are assembled (and so checked) before truncation.

    Raises:
        DecodeError: malformed arrays or an out-of-range best_iteration.
        StructuralError: broken child links or a class index outside
            ``[0, num_class)``.
    """
    trees = []
    for i, (raw, class_index) in enumerate(zip(ensemble.trees, ensemble.tree_info)):
        if not 0 <= class_index < ensemble.num_class:
            raise StructuralError(
                i, f"class index {class_index} outside [0, {ensemble.num_class})"
            )
        trees.append(assemble_tree(raw, i, class_index))

    keep = _kept_tree_count(ensemble)
    if keep < len(trees):
        logger.info(
            "best_iteration=%d: keeping %d of %d trees",
            ensemble.best_iteration, keep, len(trees),
        )
    return trees[:keep]


def model_info(ensemble: RawEnsemble, trees: list[AssembledTree]) -> ModelInfo:
    return ModelInfo(
        num_trees=len(trees),
        num_features=ensemble.num_feature,
        num_class=ensemble.num_class,
        base_score=ensemble.base_score,
        objective=ensemble.objective,
        feature_names=ensemble.feature_names,
        best_iteration=ensemble.best_iteration,
        max_depth=max((tree_depth(t.root) for t in trees), default=0),
    )


# ---------------------------------------------------------------------------
# Model sources
# ---------------------------------------------------------------------------

ModelSource = Union[str, Path, bytes, bytearray, dict, xgb.Booster]


def _parse_json(payload: Union[str, bytes, bytearray], origin: str) -> dict:
    try:
        document = json.loads(payload)
    except ValueError as e:
        raise DecodeError(origin, f"not a JSON document: {e}") from e
    if not isinstance(document, dict):
        raise DecodeError(origin, "top level of the model document must be an object")
    return document


def _booster_document(booster: xgb.Booster) -> dict:
    return _parse_json(booster.save_raw(raw_format="json"), "<booster>")


def read_document(source: ModelSource) -> dict:
    """
    Produce the JSON model document from a path, a Booster, raw JSON bytes or
    an already-parsed dict.

    ``.json`` files are parsed directly; any other file (``.ubj``, legacy
    binary) is loaded through ``xgboost.Booster`` and re-serialized as JSON.
    """
    if isinstance(source, dict):
        return source
    if isinstance(source, (bytes, bytearray)):
        return _parse_json(source, "<bytes>")
    if isinstance(source, xgb.Booster):
        return _booster_document(source)

    path = Path(source)
    if path.suffix.lower() == ".json":
        with open(path, encoding="utf-8") as f:
            return _parse_json(f.read(), str(path))

    booster = xgb.Booster()
    booster.load_model(str(path))
    return _booster_document(booster)


def load_model(source: ModelSource) -> RawEnsemble:
    ensemble = decode_ensemble(read_document(source))
    logger.debug(
        "Decoded model: %d trees, num_class=%d, best_iteration=%s",
        len(ensemble.trees), ensemble.num_class, ensemble.best_iteration,
    )
    return ensemble
