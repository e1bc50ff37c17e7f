# tests/pipeline_test/test_aggregations.py
import math
import random

import pytest

from batchscore.pipeline.aggregations import ConfusionAggregationStage, ErrorAggregationStage
from batchscore.pipeline.record import TrapRecord


def _aggregate(stage, records, parts=1):
    partials = []
    size = max(1, math.ceil(len(records) / parts))
    for i in range(0, len(records), size):
        partial = {}
        for r in records[i:i + size]:
            out = stage.process(r)
            if not isinstance(out, TrapRecord):
                stage.accumulate(partial, out)
        partials.append(partial)
    return stage.emit(stage.merge(partials))


# ----------------------------------------------------------------------
# confusion
# ----------------------------------------------------------------------
CONFUSION_ROWS = [
    {"predict": "A", "score": "A"},
    {"predict": "A", "score": "B"},
    {"predict": "A", "score": "A"},
]


def test_confusion_counts():
    stage = ConfusionAggregationStage(expected_field="predict", predicted_field="score")
    rows = _aggregate(stage, CONFUSION_ROWS)

    assert rows == [
        {"predict": "A", "score": "A", "count": 2},
        {"predict": "A", "score": "B", "count": 1},
    ]
    assert stage.output_schema() == ("predict", "score", "count")


def test_confusion_order_and_partition_independent():
    stage = ConfusionAggregationStage(expected_field="predict", predicted_field="score")
    labels = "ABC"
    rng = random.Random(7)
    records = [
        {"predict": rng.choice(labels), "score": rng.choice(labels)} for _ in range(200)
    ]
    expected = _aggregate(stage, records)

    shuffled = list(records)
    rng.shuffle(shuffled)

    assert _aggregate(stage, shuffled, parts=7) == expected
    assert sum(r["count"] for r in expected) == len(records)


def test_confusion_is_case_sensitive():
    stage = ConfusionAggregationStage(expected_field="predict", predicted_field="score")
    rows = _aggregate(stage, [{"predict": "a", "score": "A"}])
    assert rows == [{"predict": "a", "score": "A", "count": 1}]


# ----------------------------------------------------------------------
# RMSE
# ----------------------------------------------------------------------
def _rmse_stage():
    return ErrorAggregationStage(predicted_field="score", expected_field="predict", group_field="g")


def test_rmse_zero_for_perfect_group():
    rows = [{"g": "x", "score": "1.5", "predict": "1.5"} for _ in range(4)]
    assert _aggregate(_rmse_stage(), rows) == [{"g": "x", "rmse": 0.0}]


def test_rmse_value():
    rows = [
        {"g": "x", "score": "1", "predict": "1"},
        {"g": "x", "score": "2", "predict": "2"},
        {"g": "x", "score": "3", "predict": "5"},
    ]
    out = _aggregate(_rmse_stage(), rows)
    assert out[0]["rmse"] == pytest.approx(math.sqrt(4 / 3))
    assert out[0]["rmse"] == pytest.approx(1.1547, abs=1e-4)


def test_rmse_partition_independent():
    rng = random.Random(3)
    rows = [
        {"g": rng.choice("xyz"), "score": repr(rng.uniform(-5, 5)), "predict": repr(rng.uniform(-5, 5))}
        for _ in range(300)
    ]
    stage = _rmse_stage()
    assert _aggregate(stage, rows, parts=1) == _aggregate(stage, list(reversed(rows)), parts=11)


def test_rmse_traps_non_numeric_and_continues():
    stage = _rmse_stage()
    bad = stage.process({"g": "x", "score": "abc", "predict": "1"})

    assert isinstance(bad, TrapRecord)
    assert "abc" in bad.reason

    rows = [
        {"g": "x", "score": "abc", "predict": "1"},
        {"g": "x", "score": "2", "predict": "2"},
    ]
    assert _aggregate(stage, rows) == [{"g": "x", "rmse": 0.0}]


@pytest.mark.parametrize("value", [None, "nan", "inf"])
def test_rmse_traps_null_and_non_finite(value):
    out = _rmse_stage().process({"g": "x", "score": value, "predict": "1"})
    assert isinstance(out, TrapRecord)


def test_rmse_overflow_is_trapped():
    out = _rmse_stage().process({"g": "x", "score": "1e200", "predict": "-1e200"})
    assert isinstance(out, TrapRecord)


def test_rmse_groups_never_empty():
    stage = _rmse_stage()
    rows = [{"g": "x", "score": "abc", "predict": "1"}]
    assert _aggregate(stage, rows) == []
