# batchscore/utils/errors.py
from __future__ import annotations

from typing import Any, Iterable, Mapping


class BatchScoreError(RuntimeError):
    """Root of every error raised by batchscore."""


class UserInputError(BatchScoreError):
    """
    Raised for invalid user-provided config (paths, flags, field names).
    Should NOT print traceback.
    """


# ------------------------------------------------------------------
# model definition (fatal)
# ------------------------------------------------------------------
class ModelDefinitionError(BatchScoreError):
    pass


class MalformedDefinition(ModelDefinitionError):
    def __init__(self, source: str, reason: str):
        super().__init__(f"malformed model definition {source}: {reason}")
        self.source = source
        self.reason = reason


class UnsupportedModelFamily(ModelDefinitionError):
    def __init__(self, tag: str):
        super().__init__(f"unsupported model type: {tag}")
        self.tag = tag


class NotPrepared(BatchScoreError):
    """classify() called before prepare(). Programming error."""


# ------------------------------------------------------------------
# build time (fatal, before any record is processed)
# ------------------------------------------------------------------
class BuildError(BatchScoreError):
    pass


class ConflictingAggregationMode(BuildError):
    def __init__(self, validation_source: str, error_source: str):
        super().__init__(
            "validation_source and error_source are mutually exclusive "
            f"(validation_source={validation_source}, error_source={error_source})"
        )


class MissingRequiredField(BuildError):
    def __init__(self, stage: str, missing: Iterable[str], upstream: Iterable[str]):
        self.stage = stage
        self.missing = tuple(missing)
        self.upstream = tuple(upstream)
        super().__init__(
            f"[{stage}] missing required field(s) {list(self.missing)} "
            f"in upstream schema {list(self.upstream)}"
        )


class FieldCollision(BuildError):
    def __init__(self, stage: str, fields: Iterable[str]):
        self.stage = stage
        self.fields = tuple(fields)
        super().__init__(
            f"[{stage}] output field(s) {list(self.fields)} already exist upstream"
        )


class DuplicateReferenceKey(BuildError):
    def __init__(self, key_field: str, value: Any):
        self.key_field = key_field
        self.value = value
        super().__init__(f"duplicate reference key {key_field}={value!r}")


# ------------------------------------------------------------------
# per record (recovered by trapping)
# ------------------------------------------------------------------
class RecordError(BatchScoreError):
    def __init__(self, record: Mapping[str, Any], reason: str):
        super().__init__(reason)
        self.record = dict(record)
        self.reason = reason


class ScoringError(RecordError):
    pass


class NonNumericField(RecordError):
    def __init__(self, record: Mapping[str, Any], field: str):
        super().__init__(
            record, f"non-numeric value {record.get(field)!r} in field {field}"
        )
        self.field = field
