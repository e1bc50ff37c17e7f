# tests/pipeline_test/test_stages.py
import pytest

from batchscore.pipeline.record import TrapRecord
from batchscore.pipeline.reference import ReferenceTable
from batchscore.pipeline.stages import ReferenceJoinStage, ScoringStage, ValidationStage
from batchscore.utils.errors import DuplicateReferenceKey, FieldCollision, MissingRequiredField

SOURCE = ("id", "petal_length", "petal_width")


# ----------------------------------------------------------------------
# ScoringStage
# ----------------------------------------------------------------------
def test_scoring_appends_exactly_one_field(tree_classifier, iris_rows):
    tree_classifier.prepare()
    stage = ScoringStage(tree_classifier)

    out = stage.process(iris_rows[0])

    assert set(out) - set(iris_rows[0]) == {"score"}
    assert out["score"] == "setosa"
    assert stage.bind(SOURCE) == SOURCE + ("score",)


def test_scoring_traps_bad_record(tree_classifier, iris_rows):
    tree_classifier.prepare()
    out = ScoringStage(tree_classifier).process(iris_rows[3])

    assert isinstance(out, TrapRecord)
    assert out.stage == "ScoringStage"
    assert out.record == iris_rows[3]
    assert "abc" in out.reason


def test_scoring_bind_errors(tree_classifier):
    stage = ScoringStage(tree_classifier)

    with pytest.raises(MissingRequiredField) as exc:
        stage.bind(("id", "petal_length"))
    assert exc.value.missing == ("petal_width",)

    with pytest.raises(FieldCollision):
        stage.bind(SOURCE + ("score",))


# ----------------------------------------------------------------------
# ReferenceJoinStage
# ----------------------------------------------------------------------
def test_reference_join(iris_truth):
    ref = ReferenceTable.from_records(iris_truth, schema=("id", "predict"), key_field="id")
    stage = ReferenceJoinStage(ref)

    assert stage.process({"id": "2", "score": "versicolor"}) == {
        "id": "2",
        "score": "versicolor",
        "predict": "versicolor",
    }

    miss = stage.process({"id": "99", "score": "setosa"})
    assert isinstance(miss, TrapRecord)
    assert "id='99'" in miss.reason


def test_reference_duplicate_key():
    rows = [{"id": "1", "predict": "a"}, {"id": "1", "predict": "b"}]
    with pytest.raises(DuplicateReferenceKey):
        ReferenceTable.from_records(rows, schema=("id", "predict"), key_field="id")


def test_reference_missing_key_column():
    with pytest.raises(MissingRequiredField):
        ReferenceTable.from_records([], schema=("key", "predict"), key_field="id")


# ----------------------------------------------------------------------
# ValidationStage
# ----------------------------------------------------------------------
def test_validation_lenient_flags_only():
    stage = ValidationStage(predicted_field="score", expected_field="predict")

    out = stage.process({"score": "A", "predict": "B"})
    assert out["match"] is False
    assert not stage.assertion_failed(out)
    assert stage.process({"score": "A", "predict": "A"})["match"] is True


def test_validation_strict_counts_violation():
    stage = ValidationStage(predicted_field="score", expected_field="predict", strict=True)

    bad = stage.process({"score": "A", "predict": "a"})
    good = stage.process({"score": "A", "predict": "A"})

    assert stage.assertion_failed(bad)
    assert not stage.assertion_failed(good)


def test_validation_null_is_trapped():
    stage = ValidationStage(predicted_field="score", expected_field="predict")
    out = stage.process({"score": "A", "predict": None})
    assert isinstance(out, TrapRecord)
