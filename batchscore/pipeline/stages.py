# batchscore/pipeline/stages.py
from __future__ import annotations

from typing import Union

from batchscore.classifier import Classifier
from batchscore.pipeline.record import Record, Schema, TrapRecord
from batchscore.pipeline.reference import ReferenceTable
from batchscore.pipeline.stage import Stage
from batchscore.utils.errors import ScoringError


class ScoringStage(Stage):
    """
    ScoringStage (FINAL)

    Contract:
    - requires the model's active fields
    - appends exactly one field: score_field
    - ScoringError -> TrapRecord; the run continues
    """

    def __init__(self, classifier: Classifier, score_field: str = "score"):
        self.classifier = classifier
        self.score_field = score_field

    def required_fields(self) -> Schema:
        return self.classifier.input_fields

    def declared_fields(self) -> Schema:
        return (self.score_field,)

    def process(self, record: Record) -> Union[Record, TrapRecord]:
        try:
            label = self.classifier.classify(record, tuple(record))
        except ScoringError as e:
            return self.trap(record, e.reason)

        out = dict(record)
        out[self.score_field] = label
        return out

    def describe(self) -> str:
        return f"{self.stage_name}({self.classifier.model_type.value} -> {self.score_field})"


class ReferenceJoinStage(Stage):
    """
    Broadcast hash join against the known-good reference table.
    A record without a reference row is trapped.
    """

    def __init__(self, reference: ReferenceTable):
        self.reference = reference

    def required_fields(self) -> Schema:
        return (self.reference.key_field,)

    def declared_fields(self) -> Schema:
        return self.reference.fields

    def process(self, record: Record) -> Union[Record, TrapRecord]:
        key = record.get(self.reference.key_field)
        ref = self.reference.lookup(key) if key is not None else None
        if ref is None:
            return self.trap(
                record, f"no reference row for {self.reference.key_field}={key!r}"
            )

        out = dict(record)
        out.update(ref)
        return out

    def describe(self) -> str:
        return f"{self.stage_name}(on {self.reference.key_field}, rows={len(self.reference)})"


class ValidationStage(Stage):
    """
    Compare predicted vs expected (exact string equality) and append a
    boolean match flag.

    - lenient: flag only
    - strict: every mismatch counts as an assertion violation; the run
      completes and is reported failed
    """

    def __init__(
        self,
        *,
        predicted_field: str,
        expected_field: str,
        match_field: str = "match",
        strict: bool = False,
    ):
        self.predicted_field = predicted_field
        self.expected_field = expected_field
        self.match_field = match_field
        self.strict = strict

    def required_fields(self) -> Schema:
        return (self.expected_field, self.predicted_field)

    def declared_fields(self) -> Schema:
        return (self.match_field,)

    def process(self, record: Record) -> Union[Record, TrapRecord]:
        expected = record.get(self.expected_field)
        predicted = record.get(self.predicted_field)

        if expected is None:
            return self.trap(record, f"missing expected value in {self.expected_field}")
        if predicted is None:
            return self.trap(record, f"missing predicted value in {self.predicted_field}")

        out = dict(record)
        out[self.match_field] = str(predicted) == str(expected)
        return out

    def assertion_failed(self, record: Record) -> bool:
        return self.strict and record.get(self.match_field) is False

    def describe(self) -> str:
        level = "STRICT" if self.strict else "LENIENT"
        return f"{self.stage_name}({self.predicted_field} == {self.expected_field}, {level})"
