#!filepath: batchscore/pipeline/builder.py
from __future__ import annotations

from typing import List, Optional, Sequence

from batchscore import logs
from batchscore.classifier import Classifier
from batchscore.config.scoring_config import AggregationMode, ScoringConfig
from batchscore.pipeline.aggregations import (
    AggregationStage,
    ConfusionAggregationStage,
    ErrorAggregationStage,
)
from batchscore.pipeline.pipeline import Branch, Pipeline
from batchscore.pipeline.record import Schema, extend_schema
from batchscore.pipeline.reference import ReferenceTable
from batchscore.pipeline.stage import Stage
from batchscore.pipeline.stages import ReferenceJoinStage, ScoringStage, ValidationStage
from batchscore.utils.errors import (
    BuildError,
    ConflictingAggregationMode,
    FieldCollision,
    MissingRequiredField,
)


class PipelineBuilder:
    """
    PipelineBuilder (FINAL / FROZEN)

    Validate, then construct. Returns exactly one frozen Pipeline:

      NONE      : source -> [Scoring] -> primary
      CONFUSION : ... -> ReferenceJoin -> Validation -> ConfusionAggregation -> measure
      RMSE      : ... -> ReferenceJoin -> ErrorAggregation -> measure

    The builder does no I/O. Every schema problem is raised here, before
    the first record is read.
    """

    def __init__(self, cfg: ScoringConfig):
        self.cfg = cfg

    @staticmethod
    def check_modes(cfg: ScoringConfig) -> AggregationMode:
        if cfg.validation_source is not None and cfg.error_source is not None:
            raise ConflictingAggregationMode(cfg.validation_source, cfg.error_source)
        return cfg.mode

    # --------------------------------------------------
    def build(
        self,
        *,
        source_schema: Sequence[str],
        classifier: Optional[Classifier] = None,
        reference: Optional[ReferenceTable] = None,
    ) -> Pipeline:
        cfg = self.cfg
        mode = self.check_modes(cfg)
        source_schema = tuple(source_schema)

        if mode is not AggregationMode.NONE and reference is None:
            raise BuildError(f"{mode.value} mode needs a reference table")
        if mode is AggregationMode.NONE and reference is not None:
            raise BuildError("reference table given but no measure mode is configured")

        # ---------------- head ----------------
        head: List[Stage] = []
        if classifier is not None:
            head.append(ScoringStage(classifier, score_field=cfg.score_field))
        else:
            logs.warning("[PipelineBuilder] no model configured, records pass through unscored")

        output_schema = self._bind_all(head, source_schema)

        # ---------------- measure branch ----------------
        branch: Optional[Branch] = None
        if mode is not AggregationMode.NONE:
            stages, aggregation = self._branch_stages(mode, reference, classifier)
            branch_schema = self._bind_all(stages, output_schema)
            aggregation.bind(branch_schema)
            branch = Branch(
                stages=tuple(stages),
                aggregation=aggregation,
                input_schema=output_schema,
            )

        trap_schema = self._trap_schema(source_schema, head, branch)

        pipeline = Pipeline(
            name=f"batchscore-{mode.value}",
            source_schema=source_schema,
            head=tuple(head),
            output_schema=output_schema,
            trap_schema=trap_schema,
            trap_reason_field=cfg.trap_reason_field,
            mode=mode,
            branch=branch,
            classifier=classifier,
            debug=cfg.debug,
            strict=cfg.assert_strict,
            snapshot_limit=cfg.snapshot_limit,
        )

        logs.info(f"[PipelineBuilder] built {pipeline.name}")
        for line in pipeline.describe():
            logs.info(f"[PipelineBuilder] {line}")
        return pipeline

    # --------------------------------------------------
    # internal
    # --------------------------------------------------
    def _branch_stages(
        self,
        mode: AggregationMode,
        reference: ReferenceTable,
        classifier: Optional[Classifier],
    ):
        cfg = self.cfg
        join = ReferenceJoinStage(reference)

        if mode is AggregationMode.CONFUSION:
            stages: List[Stage] = [
                join,
                ValidationStage(
                    predicted_field=cfg.score_field,
                    expected_field=cfg.expected_field,
                    match_field=cfg.match_field,
                    strict=cfg.assert_strict,
                ),
            ]
            aggregation: AggregationStage = ConfusionAggregationStage(
                expected_field=cfg.expected_field,
                predicted_field=cfg.score_field,
            )
            return stages, aggregation

        group_field = cfg.group_field
        if group_field is None and classifier is not None:
            group_field = classifier.predictor
        if group_field is None:
            raise MissingRequiredField(
                "ErrorAggregationStage", ["group_field"], ("no model predictor",)
            )

        aggregation = ErrorAggregationStage(
            predicted_field=cfg.score_field,
            expected_field=cfg.expected_field,
            group_field=group_field,
        )
        return [join], aggregation

    @staticmethod
    def _bind_all(stages: Sequence[Stage], upstream: Schema) -> Schema:
        schema = tuple(upstream)
        for stage in stages:
            schema = stage.bind(schema)
        return schema

    def _trap_schema(
        self,
        source_schema: Schema,
        head: Sequence[Stage],
        branch: Optional[Branch],
    ) -> Schema:
        """Union of every trapping stage's input schema, plus the reason field."""
        schema = tuple(source_schema)
        upstream = tuple(source_schema)

        chain: List[Stage] = list(head)
        if branch is not None:
            chain += list(branch.stages) + [branch.aggregation]

        for stage in chain:
            if stage.traps:
                schema = extend_schema(schema, upstream)
            upstream = stage.bind(upstream)

        reason = self.cfg.trap_reason_field
        if reason in schema:
            raise FieldCollision("TrapSink", [reason])
        return schema + (reason,)
