# batchscore/models/regression.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
from xml.etree.ElementTree import Element

from batchscore.models.base import Label, ScoringModel
from batchscore.pmml.descriptor import ModelDescriptor, ModelFamily
from batchscore.pmml.parser import iter_children, require_attr


@dataclass(frozen=True)
class NumericPredictor:
    name: str
    coefficient: float
    exponent: float = 1.0


@dataclass(frozen=True)
class CategoricalPredictor:
    name: str
    value: str
    coefficient: float


@dataclass(frozen=True)
class RegressionTable:
    intercept: float
    target_category: Optional[str]
    numeric: Tuple[NumericPredictor, ...]
    categorical: Tuple[CategoricalPredictor, ...]


def _logistic(y: float) -> float:
    if y >= 0:
        return 1.0 / (1.0 + math.exp(-y))
    z = math.exp(y)
    return z / (1.0 + z)


class RegressionModel(ScoringModel):
    """
    Linear / logistic regression over RegressionTables.

    - functionName="regression": one table, returns the (normalized) value
    - functionName="classification": one table per target category,
      returns the category with the highest normalized score
    """

    family = ModelFamily.REGRESSION

    _NORMALIZATIONS = ("none", "softmax", "logit", "exp", "simplemax")

    def __init__(self, descriptor: ModelDescriptor, element: Element):
        super().__init__(descriptor, element)

        self.normalization = element.get("normalizationMethod", "none")
        if self.normalization not in self._NORMALIZATIONS:
            raise ValueError(f"unsupported normalizationMethod {self.normalization!r}")

        self.tables = tuple(
            self._parse_table(t) for t in iter_children(element, "RegressionTable")
        )
        if not self.tables:
            raise ValueError("RegressionModel without RegressionTable")

        if self.function_name == "classification":
            if any(t.target_category is None for t in self.tables):
                raise ValueError("classification RegressionTable without targetCategory")
        elif len(self.tables) != 1:
            raise ValueError("regression RegressionModel expects exactly one RegressionTable")

        self._categorical_index: List[Dict[str, Dict[str, float]]] = []

    @staticmethod
    def _parse_table(element: Element) -> RegressionTable:
        return RegressionTable(
            intercept=float(element.get("intercept", "0")),
            target_category=element.get("targetCategory"),
            numeric=tuple(
                NumericPredictor(
                    name=require_attr(p, "name"),
                    coefficient=float(require_attr(p, "coefficient")),
                    exponent=float(p.get("exponent", "1")),
                )
                for p in iter_children(element, "NumericPredictor")
            ),
            categorical=tuple(
                CategoricalPredictor(
                    name=require_attr(p, "name"),
                    value=require_attr(p, "value"),
                    coefficient=float(require_attr(p, "coefficient")),
                )
                for p in iter_children(element, "CategoricalPredictor")
            ),
        )

    def _prepare(self) -> None:
        # table -> field -> category -> coefficient
        self._categorical_index = []
        for table in self.tables:
            index: Dict[str, Dict[str, float]] = {}
            for p in table.categorical:
                index.setdefault(p.name, {})[p.value] = p.coefficient
            self._categorical_index.append(index)

    # --------------------------------------------------
    def _table_value(self, i: int, record: Mapping[str, Any]) -> float:
        table = self.tables[i]
        y = table.intercept

        for p in table.numeric:
            y += p.coefficient * self.numeric_value(record, p.name) ** p.exponent

        for name, coefficients in self._categorical_index[i].items():
            y += coefficients.get(self.category_value(record, name), 0.0)

        return y

    def evaluate(self, record: Mapping[str, Any]) -> Label:
        values = [self._table_value(i, record) for i in range(len(self.tables))]

        if self.function_name != "classification":
            return self._normalize_scalar(values[0])

        probs = self._normalize_vector(values)
        best = max(range(len(probs)), key=lambda i: probs[i])
        return self.tables[best].target_category

    def _normalize_scalar(self, y: float) -> float:
        if self.normalization == "logit":
            return _logistic(y)
        if self.normalization == "exp":
            return math.exp(y)
        return y

    def _normalize_vector(self, values: List[float]) -> List[float]:
        if self.normalization == "softmax":
            top = max(values)
            exps = [math.exp(v - top) for v in values]
            total = sum(exps)
            return [e / total for e in exps]

        if self.normalization == "logit":
            if len(values) == 2:
                p = _logistic(values[0])
                return [p, 1.0 - p]
            return [_logistic(v) for v in values]

        if self.normalization == "exp":
            return [math.exp(v) for v in values]

        if self.normalization == "simplemax":
            total = sum(values)
            return [v / total for v in values] if total else values

        return values
