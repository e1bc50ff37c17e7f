#!filepath: batchscore/models/base.py
"""
ScoringModel (FINAL / FROZEN)

ScoringModel defines HOW a parsed model definition is applied to one record.

Lifecycle:
- __init__: parse family-specific parameters (may raise ValueError)
- prepare(): one-time setup of lookup structures
- evaluate(): per-record inference, read-only w.r.t. the model

Non-responsibilities:
- Family dispatch (Classifier)
- Trapping failures (ScoringStage)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Mapping, Sequence, Tuple, Union
from xml.etree.ElementTree import Element

from batchscore.pmml.descriptor import DataField, ModelDescriptor, ModelFamily
from batchscore.pmml.parser import parse_mining_schema
from batchscore.utils.errors import ScoringError

Label = Union[str, float]


def is_missing(value: Any) -> bool:
    return value is None or value == ""


def render_label(value: Label) -> str:
    if isinstance(value, float):
        return repr(value)
    return str(value)


class ScoringModel(ABC):

    family: ClassVar[ModelFamily]

    def __init__(self, descriptor: ModelDescriptor, element: Element):
        schema = parse_mining_schema(element)
        self.active_fields: Tuple[str, ...] = schema.active
        self.target = schema.target or descriptor.mining_schema.target
        self.function_name = element.get("functionName", descriptor.function_name)
        self.data_fields: Dict[str, DataField] = dict(descriptor.data_fields)
        self._prepared = False

    # --------------------------------------------------
    # lifecycle
    # --------------------------------------------------
    @property
    def prepared(self) -> bool:
        return self._prepared

    def prepare(self) -> None:
        if self._prepared:
            return
        self._prepare()
        self._prepared = True

    def _prepare(self) -> None:
        """Hook for one-time setup. Default: nothing to do."""

    # --------------------------------------------------
    # scoring
    # --------------------------------------------------
    def classify(self, record: Mapping[str, Any], schema: Sequence[str]) -> str:
        missing = [f for f in self.active_fields if f not in schema]
        if missing:
            raise ScoringError(record, f"missing field(s) {missing} for {self.family.value}")
        try:
            label = self.evaluate(record)
        except (ArithmeticError, ValueError) as e:
            raise ScoringError(
                record, f"{self.family.value} evaluation failed: {type(e).__name__}: {e}"
            ) from e
        return render_label(label)

    @abstractmethod
    def evaluate(self, record: Mapping[str, Any]) -> Label:
        """
        Returns a category label (str) or a numeric prediction (float).
        Raises ScoringError when a value is unusable.
        """
        raise NotImplementedError

    # --------------------------------------------------
    # value helpers
    # --------------------------------------------------
    def is_numeric(self, name: str) -> bool:
        df = self.data_fields.get(name)
        return df.is_numeric if df is not None else True

    @staticmethod
    def numeric_value(record: Mapping[str, Any], name: str) -> float:
        value = record.get(name)
        if is_missing(value):
            raise ScoringError(record, f"missing value for {name}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ScoringError(record, f"non-numeric value {value!r} for {name}") from None

    @staticmethod
    def category_value(record: Mapping[str, Any], name: str) -> str:
        value = record.get(name)
        if is_missing(value):
            raise ScoringError(record, f"missing value for {name}")
        return str(value)
