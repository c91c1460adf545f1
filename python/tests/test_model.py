import copy
import json

import pytest

from helpers import leaf, model_doc, stump, tree_doc
from xgb_codegen import DecodeError, StructuralError, decode_ensemble, load_model, load_trees
from xgb_codegen.model import model_info


@pytest.fixture(name="stump_document")
def stump_document_fixture() -> dict:
    return model_doc([stump(2, 10.0, 1.0, -1.0)], base_score="5E-1")


def test_decode_string_scalars(stump_document) -> None:
    ensemble = decode_ensemble(stump_document)

    assert ensemble.base_score == (0.5,)
    assert ensemble.num_class == 1
    assert ensemble.num_feature == 4
    assert ensemble.best_iteration is None
    assert ensemble.objective == "reg:squarederror"
    assert ensemble.tree_info == (0,)
    assert ensemble.trees[0].default_left == (True, False, False)


@pytest.mark.parametrize(
    ("base_score", "num_class", "expected"),
    [
        (0.25, 0, (0.25,)),
        ("[2.5E-1]", "0", (0.25,)),
        ("[1E-1,2E-1,7E-1]", "3", (0.1, 0.2, 0.7)),
        ([0.1, 0.2, 0.7], 3, (0.1, 0.2, 0.7)),
    ],
)
def test_base_score_forms(base_score, num_class, expected) -> None:
    ensemble = decode_ensemble(model_doc([leaf(1.0)], base_score=base_score, num_class=num_class))

    assert ensemble.base_score == pytest.approx(expected)


def test_num_class_zero_means_single_output() -> None:
    assert decode_ensemble(model_doc([leaf(1.0)], num_class="0")).num_class == 1
    assert decode_ensemble(model_doc([leaf(1.0)], num_class="1")).num_class == 1


@pytest.mark.parametrize(
    ("path", "field"),
    [
        (("learner", "learner_model_param", "base_score"), "learner.learner_model_param.base_score"),
        (("learner", "learner_model_param", "num_class"), "learner.learner_model_param.num_class"),
        (("learner", "gradient_booster", "model", "trees"), "learner.gradient_booster.model.trees"),
        (("learner", "gradient_booster", "model", "tree_info"), "learner.gradient_booster.model.tree_info"),
        (("learner", "gradient_booster", "model"), "learner.gradient_booster.model"),
    ],
)
def test_missing_required_field(stump_document, path, field) -> None:
    document = copy.deepcopy(stump_document)
    parent = document
    for key in path[:-1]:
        parent = parent[key]
    del parent[path[-1]]

    with pytest.raises(DecodeError) as excinfo:
        decode_ensemble(document)

    assert excinfo.value.field == field


@pytest.mark.parametrize(
    "tree_field",
    ["left_children", "right_children", "split_conditions", "split_indices", "default_left"],
)
def test_missing_tree_array(stump_document, tree_field) -> None:
    del stump_document["learner"]["gradient_booster"]["model"]["trees"][0][tree_field]

    with pytest.raises(DecodeError) as excinfo:
        decode_ensemble(stump_document)

    assert excinfo.value.field == f"learner.gradient_booster.model.trees[0].{tree_field}"


@pytest.mark.parametrize(
    ("param", "value", "field"),
    [
        ("base_score", "half", "learner.learner_model_param.base_score"),
        ("base_score", "[5E-1", "learner.learner_model_param.base_score"),
        ("base_score", True, "learner.learner_model_param.base_score"),
        ("num_class", "three", "learner.learner_model_param.num_class"),
        ("num_class", "2.5", "learner.learner_model_param.num_class"),
        ("num_class", "-2", "learner.learner_model_param.num_class"),
        ("num_feature", "many", "learner.learner_model_param.num_feature"),
    ],
)
def test_unparseable_params(stump_document, param, value, field) -> None:
    stump_document["learner"]["learner_model_param"][param] = value

    with pytest.raises(DecodeError) as excinfo:
        decode_ensemble(stump_document)

    assert excinfo.value.field == field


def test_unparseable_best_iteration(stump_document) -> None:
    stump_document["learner"]["attributes"]["best_iteration"] = "best"

    with pytest.raises(DecodeError) as excinfo:
        decode_ensemble(stump_document)

    assert excinfo.value.field == "learner.attributes.best_iteration"


def test_empty_best_iteration_means_absent(stump_document) -> None:
    stump_document["learner"]["attributes"]["best_iteration"] = ""

    assert decode_ensemble(stump_document).best_iteration is None


def test_non_numeric_array_element(stump_document) -> None:
    stump_document["learner"]["gradient_booster"]["model"]["trees"][0]["split_conditions"][1] = "x"

    with pytest.raises(DecodeError) as excinfo:
        decode_ensemble(stump_document)

    assert excinfo.value.field == "learner.gradient_booster.model.trees[0].split_conditions[1]"


def test_base_score_vector_length_checked() -> None:
    with pytest.raises(DecodeError, match="expected 1 or 3 values"):
        decode_ensemble(model_doc([leaf(1.0)], base_score="[1E-1,2E-1]", num_class="3"))


def test_tree_info_length_checked() -> None:
    document = model_doc([leaf(1.0), leaf(2.0)], tree_info=[0])

    with pytest.raises(DecodeError) as excinfo:
        decode_ensemble(document)

    assert excinfo.value.field == "learner.gradient_booster.model.tree_info"


def test_dart_booster_rejected(stump_document) -> None:
    stump_document["learner"]["gradient_booster"]["name"] = "dart"

    with pytest.raises(DecodeError, match="only 'gbtree'"):
        decode_ensemble(stump_document)


def test_categorical_split_rejected(stump_document) -> None:
    stump_document["learner"]["gradient_booster"]["model"]["trees"][0]["split_type"] = [1, 0, 0]

    with pytest.raises(DecodeError, match="categorical"):
        decode_ensemble(stump_document)


def test_vector_leaf_rejected(stump_document) -> None:
    stump_document["learner"]["gradient_booster"]["model"]["trees"][0]["tree_param"]["size_leaf_vector"] = "3"

    with pytest.raises(DecodeError, match="vector-leaf"):
        decode_ensemble(stump_document)


def test_invalid_iteration_indptr() -> None:
    with pytest.raises(DecodeError, match="iteration_indptr"):
        decode_ensemble(model_doc([leaf(1.0), leaf(2.0)], iteration_indptr=[0, 1]))


# ---------------------------------------------------------------------------
# load_trees: class attachment and truncation
# ---------------------------------------------------------------------------

def test_class_index_attached_to_tree() -> None:
    document = model_doc([leaf(1.0), leaf(2.0), leaf(3.0)], num_class="3", tree_info=[0, 1, 2])
    trees = load_trees(decode_ensemble(document))

    assert [t.class_index for t in trees] == [0, 1, 2]
    assert [t.index for t in trees] == [0, 1, 2]


@pytest.mark.parametrize("class_index", [3, -1])
def test_class_index_out_of_range(class_index) -> None:
    document = model_doc([leaf(1.0), leaf(2.0)], num_class="3", tree_info=[0, class_index])

    with pytest.raises(StructuralError) as excinfo:
        load_trees(decode_ensemble(document))

    assert excinfo.value.tree == 1


@pytest.mark.parametrize(
    ("best_iteration", "expected_count"),
    [(None, 5), ("0", 1), ("2", 3), ("4", 5), (3, 4)],
)
def test_truncation_to_best_iteration(best_iteration, expected_count) -> None:
    document = model_doc([leaf(float(i)) for i in range(5)], best_iteration=best_iteration)
    trees = load_trees(decode_ensemble(document))

    assert len(trees) == expected_count
    assert [t.root.weight for t in trees] == [float(i) for i in range(expected_count)]


@pytest.mark.parametrize("best_iteration", ["5", "-1"])
def test_best_iteration_out_of_range(best_iteration) -> None:
    document = model_doc([leaf(float(i)) for i in range(5)], best_iteration=best_iteration)

    with pytest.raises(DecodeError) as excinfo:
        load_trees(decode_ensemble(document))

    assert excinfo.value.field == "learner.attributes.best_iteration"


def test_truncation_uses_round_offsets_when_present() -> None:
    # Three classes, three rounds: every round owns three trees.
    trees = [leaf(float(i)) for i in range(9)]
    document = model_doc(
        trees,
        num_class="3",
        tree_info=[0, 1, 2] * 3,
        best_iteration="1",
        iteration_indptr=[0, 3, 6, 9],
    )
    kept = load_trees(decode_ensemble(document))

    assert len(kept) == 6
    assert [t.class_index for t in kept] == [0, 1, 2, 0, 1, 2]


def test_trees_after_best_iteration_are_still_checked() -> None:
    broken = tree_doc([1, -1], [-1, -1], [0.0, 1.0], [0, 0], [0, 0])
    document = model_doc([leaf(1.0), broken], best_iteration="0")

    with pytest.raises(StructuralError):
        load_trees(decode_ensemble(document))


def test_model_info(stump_document) -> None:
    stump_document["learner"]["feature_names"] = ["a", "b", "c", "d"]
    ensemble = decode_ensemble(stump_document)
    info = model_info(ensemble, load_trees(ensemble))

    assert info.num_trees == 1
    assert info.num_features == 4
    assert info.max_depth == 1
    assert info.feature_names == ("a", "b", "c", "d")


# ---------------------------------------------------------------------------
# Model sources
# ---------------------------------------------------------------------------

def test_load_model_from_json_file(tmp_path, stump_document) -> None:
    path = tmp_path / "model.json"
    path.write_text(json.dumps(stump_document))

    ensemble = load_model(path)

    assert len(ensemble.trees) == 1
    assert load_model(str(path)) == ensemble


def test_load_model_from_bytes_and_dict(stump_document) -> None:
    assert load_model(json.dumps(stump_document).encode()) == load_model(stump_document)


def test_load_model_rejects_non_json(tmp_path) -> None:
    path = tmp_path / "model.json"
    path.write_text("{not json")

    with pytest.raises(DecodeError) as excinfo:
        load_model(path)

    assert excinfo.value.field == str(path)
