# tests/conftest.py
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Sequence

import pytest
from loguru import logger

from batchscore.classifier import Classifier
from batchscore.config.scoring_config import ScoringConfig
from batchscore.pmml.parser import parse_pmml_text

from tests.samples import IRIS_TREE, LINEAR_REGRESSION


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def tree_classifier() -> Classifier:
    return Classifier.from_descriptor(parse_pmml_text(IRIS_TREE, source="iris.pmml"))


@pytest.fixture
def regression_classifier() -> Classifier:
    return Classifier.from_descriptor(parse_pmml_text(LINEAR_REGRESSION, source="linear.pmml"))


@pytest.fixture
def write_pmml(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write(text: str, name: str = "model.pmml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


# ----------------------------------------------------------------------
# tables
# ----------------------------------------------------------------------
@pytest.fixture
def write_tsv(tmp_path: Path) -> Callable[..., Path]:
    """
    write_tsv("in.tsv", ["id", "x"], [["1", "2.0"], ...]) -> path
    """

    def _write(name: str, header: Sequence[str], rows: Sequence[Sequence[str]]) -> Path:
        path = tmp_path / name
        lines = ["\t".join(header)] + ["\t".join(r) for r in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def iris_rows() -> List[Dict[str, str]]:
    return [
        {"id": "1", "petal_length": "1.4", "petal_width": "0.2"},
        {"id": "2", "petal_length": "4.5", "petal_width": "1.5"},
        {"id": "3", "petal_length": "5.5", "petal_width": "2.0"},
        {"id": "4", "petal_length": "abc", "petal_width": "1.0"},
    ]


@pytest.fixture
def iris_truth() -> List[Dict[str, str]]:
    return [
        {"id": "1", "predict": "setosa"},
        {"id": "2", "predict": "versicolor"},
        {"id": "3", "predict": "versicolor"},
    ]


@pytest.fixture
def scoring_cfg(tmp_path: Path) -> Callable[..., ScoringConfig]:
    def _cfg(**kwargs) -> ScoringConfig:
        base = {
            "input": str(tmp_path / "in.tsv"),
            "output": str(tmp_path / "out" / "classify.tsv"),
            "trap": str(tmp_path / "out" / "trap.tsv"),
        }
        base.update(kwargs)
        return ScoringConfig(**base)

    return _cfg
