# batchscore/config/scoring_config.py
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AggregationMode(str, Enum):
    NONE = "none"
    CONFUSION = "confusion"   # validation_source
    RMSE = "rmse"             # error_source


class ScoringConfig(BaseModel):
    """
    ScoringConfig (FINAL)

    One config == one pipeline run.

    Semantics:
      - paths only, nothing is opened here
      - validation_source / error_source select the measure mode;
        configuring both is rejected by PipelineBuilder, not here
    """

    model_config = ConfigDict(populate_by_name=True)

    # model
    model: Optional[str] = None

    # taps
    input: str
    output: str
    trap: str
    measure_output: Optional[str] = None
    dot_output: Optional[str] = None

    # measure sources
    validation_source: Optional[str] = None
    error_source: Optional[str] = None
    join_key: str = "id"

    # fields
    score_field: str = "score"
    expected_field: str = "predict"
    match_field: str = "match"
    group_field: Optional[str] = None
    trap_reason_field: str = "trap_reason"

    # format
    delimiter: str = "\t"

    # runtime switches
    debug: bool = False
    assert_strict: bool = Field(default=False, alias="assert")
    snapshot_limit: int = Field(default=20, ge=0)

    # execution
    batch_size: int = Field(default=10_000, gt=0)
    workers: Optional[int] = Field(default=1, ge=1)

    @field_validator("delimiter")
    @classmethod
    def _single_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError(f"delimiter must be a single character, got {v!r}")
        return v

    # --------------------------------------------------
    @property
    def mode(self) -> AggregationMode:
        if self.validation_source is not None:
            return AggregationMode.CONFUSION
        if self.error_source is not None:
            return AggregationMode.RMSE
        return AggregationMode.NONE

    @property
    def reference_source(self) -> Optional[str]:
        return self.validation_source or self.error_source

    @property
    def measure_path(self) -> Path:
        if self.measure_output is not None:
            return Path(self.measure_output)
        return Path(self.output).with_name("measure.tsv")
