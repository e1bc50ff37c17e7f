# batchscore/pipeline/aggregations.py
from __future__ import annotations

import math
from abc import abstractmethod
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Tuple, Union

from batchscore.pipeline.record import Record, Schema, TrapRecord
from batchscore.pipeline.stage import Stage
from batchscore.utils.errors import NonNumericField

GroupKey = Tuple[Any, ...]
Partial = Dict[GroupKey, Any]


def _sort_key(key: GroupKey) -> Tuple[Tuple[bool, str], ...]:
    return tuple((v is not None, "" if v is None else str(v)) for v in key)


class AggregationStage(Stage):
    """
    AggregationStage (FINAL / FROZEN)

    Grouping is a merge barrier:

      partition -> accumulate() -> partial {key: state}
      partials  -> merge()      -> merged  {key: state}
      merged    -> emit()       -> one record per key

    combine() MUST be associative and commutative so the merged result
    does not depend on partition boundaries or completion order.
    """

    def process(self, record: Record) -> Union[Record, TrapRecord]:
        return record

    @abstractmethod
    def key_fields(self) -> Schema:
        ...

    @abstractmethod
    def contribution(self, record: Record) -> Any:
        ...

    @abstractmethod
    def combine(self, a: Any, b: Any) -> Any:
        ...

    @abstractmethod
    def finalize(self, key: GroupKey, state: Any) -> Record:
        ...

    @abstractmethod
    def output_schema(self) -> Schema:
        ...

    # --------------------------------------------------
    def accumulate(self, partial: Partial, record: Record) -> None:
        key = tuple(record.get(f) for f in self.key_fields())
        c = self.contribution(record)
        partial[key] = self.combine(partial[key], c) if key in partial else c

    def merge_into(self, merged: Partial, partial: Partial) -> Partial:
        for key, state in partial.items():
            merged[key] = self.combine(merged[key], state) if key in merged else state
        return merged

    def merge(self, partials: Iterable[Partial]) -> Partial:
        merged: Partial = {}
        for p in partials:
            self.merge_into(merged, p)
        return merged

    def emit(self, merged: Partial) -> List[Record]:
        return [self.finalize(k, merged[k]) for k in sorted(merged, key=_sort_key)]


class ConfusionAggregationStage(AggregationStage):
    """
    Confusion matrix: count of records per (expected, predicted) pair.
    Keys compare exactly (case-sensitive for labels).
    """

    traps = False

    def __init__(self, *, expected_field: str, predicted_field: str, count_field: str = "count"):
        self.expected_field = expected_field
        self.predicted_field = predicted_field
        self.count_field = count_field

    def required_fields(self) -> Schema:
        return (self.expected_field, self.predicted_field)

    def key_fields(self) -> Schema:
        return (self.expected_field, self.predicted_field)

    def contribution(self, record: Record) -> int:
        return 1

    def combine(self, a: int, b: int) -> int:
        return a + b

    def finalize(self, key: GroupKey, state: int) -> Record:
        expected, predicted = key
        return {
            self.expected_field: expected,
            self.predicted_field: predicted,
            self.count_field: state,
        }

    def output_schema(self) -> Schema:
        return (self.expected_field, self.predicted_field, self.count_field)

    def describe(self) -> str:
        return f"{self.stage_name}(by {self.expected_field}, {self.predicted_field})"


class ErrorAggregationStage(AggregationStage):
    """
    Per-group RMSE.

    process():  diff_sq = (predicted - expected) ** 2, NonNumericField -> trap
    combine():  (sum of diff_sq, count), sums kept as exact Fractions
    finalize(): rmse = sqrt(sum / count), rounded to double once
    """

    def __init__(
        self,
        *,
        predicted_field: str,
        expected_field: str,
        group_field: str,
        diff_field: str = "diff_sq",
        rmse_field: str = "rmse",
    ):
        self.predicted_field = predicted_field
        self.expected_field = expected_field
        self.group_field = group_field
        self.diff_field = diff_field
        self.rmse_field = rmse_field

    def required_fields(self) -> Schema:
        return (self.predicted_field, self.expected_field, self.group_field)

    def declared_fields(self) -> Schema:
        return (self.diff_field,)

    def key_fields(self) -> Schema:
        return (self.group_field,)

    @staticmethod
    def _number(record: Record, field: str) -> float:
        value = record.get(field)
        try:
            x = float(value)
        except (TypeError, ValueError):
            raise NonNumericField(record, field) from None
        if not math.isfinite(x):
            raise NonNumericField(record, field)
        return x

    def process(self, record: Record) -> Union[Record, TrapRecord]:
        try:
            predicted = self._number(record, self.predicted_field)
            expected = self._number(record, self.expected_field)
        except NonNumericField as e:
            return self.trap(record, e.reason)

        diff = predicted - expected
        diff_sq = diff * diff
        if not math.isfinite(diff_sq):
            return self.trap(record, f"squared error overflows double ({predicted} - {expected})")

        out = dict(record)
        out[self.diff_field] = diff_sq
        return out

    def contribution(self, record: Record) -> Tuple[Fraction, int]:
        return Fraction(record[self.diff_field]), 1

    def combine(self, a: Tuple[Fraction, int], b: Tuple[Fraction, int]) -> Tuple[Fraction, int]:
        return a[0] + b[0], a[1] + b[1]

    def finalize(self, key: GroupKey, state: Tuple[Fraction, int]) -> Record:
        total, count = state
        return {
            self.group_field: key[0],
            self.rmse_field: math.sqrt(float(total / count)),
        }

    def output_schema(self) -> Schema:
        return (self.group_field, self.rmse_field)

    def describe(self) -> str:
        return f"{self.stage_name}(by {self.group_field})"
