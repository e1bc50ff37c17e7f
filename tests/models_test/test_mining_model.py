# tests/models_test/test_mining_model.py
import pytest

from batchscore.classifier import Classifier
from batchscore.pmml.parser import parse_pmml_text
from batchscore.utils.errors import ScoringError

from tests.samples import MINING_VOTE, mining_regression

SEGMENTS = [("s1", 1, 0), ("s2", 3, 2), ("s3", 0, 4)]


def _classifier(text) -> Classifier:
    c = Classifier.from_descriptor(parse_pmml_text(text))
    c.prepare()
    return c


@pytest.mark.parametrize(
    "method, expected",
    [
        ("selectFirst", "1.0"),
        ("average", "3.0"),
        ("weightedAverage", "2.5"),
        ("median", "3.0"),
        ("max", "5.0"),
        ("sum", "9.0"),
    ],
)
def test_numeric_combination(method, expected):
    c = _classifier(mining_regression(method, SEGMENTS))
    assert c.classify({"x": "1"}, ("x",)) == expected


def test_majority_vote():
    c = _classifier(MINING_VOTE.format(method="majorityVote"))
    record = {"petal_length": "4", "petal_width": "2"}
    assert c.classify(record, tuple(record)) == "b"


def test_weighted_majority_vote():
    c = _classifier(MINING_VOTE.format(method="weightedMajorityVote"))
    record = {"petal_length": "4", "petal_width": "2"}
    assert c.classify(record, tuple(record)) == "c"


def test_segment_predicate_filters_segments():
    c = _classifier(MINING_VOTE.format(method="weightedMajorityVote"))
    record = {"petal_length": "1", "petal_width": "0.1"}
    assert c.classify(record, tuple(record)) == "a"


def test_zero_total_weight():
    c = _classifier(mining_regression("weightedAverage", [("s1", 0, 0)]))
    with pytest.raises(ScoringError, match="zero total weight"):
        c.classify({"x": "1"}, ("x",))


def test_unknown_method_rejected():
    with pytest.raises(Exception, match="multipleModelMethod"):
        Classifier.from_descriptor(parse_pmml_text(mining_regression("modelChain", SEGMENTS)))
