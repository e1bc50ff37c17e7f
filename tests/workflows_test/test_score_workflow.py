# tests/workflows_test/test_score_workflow.py
import math

import pandas as pd
import pytest

from batchscore.pipeline.runner import RunStatus
from batchscore.utils.errors import (
    ConflictingAggregationMode,
    DuplicateReferenceKey,
    MalformedDefinition,
    MissingRequiredField,
    UnsupportedModelFamily,
    UserInputError,
)
from batchscore.workflows.score_workflow import run_scoring

from tests.samples import IRIS_TREE, LINEAR_REGRESSION, NEURAL_NETWORK

IRIS_HEADER = ["id", "petal_length", "petal_width"]
IRIS_ROWS = [
    ["1", "1.4", "0.2"],
    ["2", "4.5", "1.5"],
    ["3", "5.5", "2.0"],
    ["4", "abc", "1.0"],
]


def _read(path):
    return pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)


@pytest.fixture
def iris_files(write_tsv, write_pmml):
    return {
        "input": str(write_tsv("in.tsv", IRIS_HEADER, IRIS_ROWS)),
        "model": str(write_pmml(IRIS_TREE, "iris.pmml")),
        "truth": str(
            write_tsv("truth.tsv", ["id", "predict"], [["1", "setosa"], ["2", "versicolor"], ["3", "versicolor"]])
        ),
    }


def test_scoring_end_to_end(scoring_cfg, iris_files, tmp_path):
    cfg = scoring_cfg(input=iris_files["input"], model=iris_files["model"], batch_size=2)
    result = run_scoring(cfg)

    assert result.status is RunStatus.TRAPPED
    out = _read(cfg.output)
    assert list(out.columns) == IRIS_HEADER + ["score"]
    assert out["score"].tolist() == ["setosa", "versicolor", "virginica"]

    trap = _read(cfg.trap)
    assert list(trap.columns) == IRIS_HEADER + ["trap_reason"]
    assert trap["id"].tolist() == ["4"]
    assert not (tmp_path / "out" / "measure.tsv").exists()


def test_confusion_end_to_end(scoring_cfg, iris_files, tmp_path):
    cfg = scoring_cfg(
        input=iris_files["input"],
        model=iris_files["model"],
        validation_source=iris_files["truth"],
        dot_output=str(tmp_path / "flow.dot"),
    )
    result = run_scoring(cfg)

    measure = _read(cfg.measure_path)
    assert measure.to_dict("records") == [
        {"predict": "setosa", "score": "setosa", "count": "1"},
        {"predict": "versicolor", "score": "versicolor", "count": "1"},
        {"predict": "versicolor", "score": "virginica", "count": "1"},
    ]
    assert result.records_trapped == 1
    assert (tmp_path / "flow.dot").read_text().startswith("digraph")


def test_strict_end_to_end_keeps_partial_output(scoring_cfg, iris_files):
    cfg = scoring_cfg(
        input=iris_files["input"],
        model=iris_files["model"],
        validation_source=iris_files["truth"],
        **{"assert": True},
    )
    result = run_scoring(cfg)

    assert result.exit_code == 1
    assert len(_read(cfg.output)) == 3


def test_rmse_end_to_end(scoring_cfg, write_tsv, write_pmml):
    cfg = scoring_cfg(
        input=str(write_tsv("in.tsv", ["id", "x", "y"], [["1", "1", "a"], ["2", "2", "a"], ["3", "0.5", "b"]])),
        model=str(write_pmml(LINEAR_REGRESSION, "linear.pmml")),
        error_source=str(write_tsv("err.tsv", ["id", "predict"], [["1", "3"], ["2", "7"], ["3", "2"]])),
    )
    result = run_scoring(cfg)

    assert result.status is RunStatus.SUCCEEDED
    rows = {r["y"]: float(r["rmse"]) for r in _read(cfg.measure_path).to_dict("records")}
    # y = 1 + 2x: group a errors (0, -2), group b error 0
    assert rows["a"] == pytest.approx(math.sqrt(2.0))
    assert rows["b"] == 0.0


def test_no_model_passthrough(scoring_cfg, write_tsv):
    cfg = scoring_cfg(input=str(write_tsv("in.tsv", ["id", "score"], [["1", "A"]])))
    result = run_scoring(cfg)

    assert result.status is RunStatus.SUCCEEDED
    assert _read(cfg.output).to_dict("records") == [{"id": "1", "score": "A"}]


def test_mode_conflict_before_any_io(scoring_cfg):
    cfg = scoring_cfg(
        input="missing.tsv", model="missing.pmml", validation_source="a.tsv", error_source="b.tsv"
    )
    with pytest.raises(ConflictingAggregationMode):
        run_scoring(cfg)


def test_unsupported_model(scoring_cfg, iris_files, write_pmml):
    cfg = scoring_cfg(input=iris_files["input"], model=str(write_pmml(NEURAL_NETWORK, "nn.pmml")))
    with pytest.raises(UnsupportedModelFamily):
        run_scoring(cfg)


def test_malformed_model(scoring_cfg, iris_files, write_pmml):
    cfg = scoring_cfg(input=iris_files["input"], model=str(write_pmml("<PMML>", "bad.pmml")))
    with pytest.raises(MalformedDefinition):
        run_scoring(cfg)


def test_missing_input(scoring_cfg, iris_files, tmp_path):
    cfg = scoring_cfg(input=str(tmp_path / "nope.tsv"), model=iris_files["model"])
    with pytest.raises(UserInputError):
        run_scoring(cfg)


def test_input_missing_model_field(scoring_cfg, iris_files, write_tsv):
    cfg = scoring_cfg(
        input=str(write_tsv("narrow.tsv", ["id", "petal_length"], [["1", "1.0"]])),
        model=iris_files["model"],
    )
    with pytest.raises(MissingRequiredField):
        run_scoring(cfg)


def test_duplicate_reference_key(scoring_cfg, iris_files, write_tsv):
    cfg = scoring_cfg(
        input=iris_files["input"],
        model=iris_files["model"],
        validation_source=str(write_tsv("dup.tsv", ["id", "predict"], [["1", "a"], ["1", "b"]])),
    )
    with pytest.raises(DuplicateReferenceKey):
        run_scoring(cfg)


def test_parallel_workers_end_to_end(scoring_cfg, iris_files):
    cfg = scoring_cfg(
        input=iris_files["input"],
        model=iris_files["model"],
        validation_source=iris_files["truth"],
        batch_size=1,
        workers=2,
    )
    result = run_scoring(cfg)

    assert result.records_processed == 4
    assert _read(cfg.output)["id"].tolist() == ["1", "2", "3"]
    assert sum(int(r["count"]) for r in result.measures) == 3


def test_regression_rmse_scenario(scoring_cfg, write_tsv, write_pmml):
    identity = LINEAR_REGRESSION.replace('intercept="1.0"', 'intercept="0"').replace(
        'coefficient="2.0"', 'coefficient="1.0"'
    )
    cfg = scoring_cfg(
        input=str(write_tsv("in.tsv", ["id", "x", "y"], [["1", "1", "g"], ["2", "2", "g"], ["3", "3", "g"]])),
        model=str(write_pmml(identity, "identity.pmml")),
        error_source=str(write_tsv("err.tsv", ["id", "predict"], [["1", "1.0"], ["2", "2.0"], ["3", "5.0"]])),
    )
    result = run_scoring(cfg)

    assert result.measures == ({"y": "g", "rmse": pytest.approx(math.sqrt(4 / 3))},)


def test_ragged_input_row_is_trapped(scoring_cfg, write_pmml, tmp_path):
    path = tmp_path / "ragged.tsv"
    path.write_text(
        "id\tpetal_length\tpetal_width\n"
        "1\t1.4\t0.2\n"
        "2\t4.5\t1.5\textra\n"
        "3\t5.5\t2.0\n",
        encoding="utf-8",
    )
    cfg = scoring_cfg(input=str(path), model=str(write_pmml(IRIS_TREE, "iris.pmml")))

    result = run_scoring(cfg)

    assert result.status is RunStatus.TRAPPED
    assert result.records_processed == 3
    assert _read(cfg.output)["id"].tolist() == ["1", "3"]
    trap = _read(cfg.trap)
    assert trap["id"].tolist() == ["2"]
    assert trap["trap_reason"].iloc[0].startswith("[TableReader] expected 3 columns, got 4")
