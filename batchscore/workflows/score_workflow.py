# batchscore/workflows/score_workflow.py
from __future__ import annotations

from contextlib import ExitStack
from pathlib import Path
from typing import Optional, Tuple

from batchscore import logs
from batchscore.classifier import Classifier
from batchscore.config.log_config import LogConfig
from batchscore.config.scoring_config import AggregationMode, ScoringConfig
from batchscore.observability.instrumentation import Instrumentation
from batchscore.pipeline.builder import PipelineBuilder
from batchscore.pipeline.pipeline import Pipeline
from batchscore.pipeline.reference import ReferenceTable
from batchscore.pipeline.runner import Runner, RunResult
from batchscore.tables.reader import iter_records, read_header, read_records
from batchscore.tables.writer import TsvSink
from batchscore.utils.errors import BuildError, ModelDefinitionError, UserInputError


def init_logging(cfg: LogConfig) -> None:
    if cfg.file_sink:
        logs.setup(
            log_dir=cfg.dir,
            rotation=cfg.rotation,
            retention=cfg.retention,
            level=cfg.level,
        )


def load_reference(cfg: ScoringConfig) -> Optional[ReferenceTable]:
    source = cfg.reference_source
    if source is None:
        return None

    schema, records = read_records(source, cfg.delimiter)
    table = ReferenceTable.from_records(records, schema=schema, key_field=cfg.join_key)
    logs.info(
        f"[ScoreWorkflow] reference {source} rows={len(table)} fields={list(table.fields)}"
    )
    return table


def build_scoring_pipeline(cfg: ScoringConfig) -> Tuple[Pipeline, Optional[ReferenceTable]]:
    """
    Scoring Workflow: assemble (FINAL / FROZEN)

    Order matters: mode conflicts fail before the model or any table is read.
    """
    builder = PipelineBuilder(cfg)
    builder.check_modes(cfg)

    classifier = Classifier.load(cfg.model) if cfg.model is not None else None
    source_schema = read_header(cfg.input, cfg.delimiter)
    reference = load_reference(cfg)

    pipeline = builder.build(
        source_schema=source_schema,
        classifier=classifier,
        reference=reference,
    )

    if cfg.dot_output is not None:
        path = Path(cfg.dot_output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(pipeline.to_dot() + "\n", encoding="utf-8")
        logs.info(f"[ScoreWorkflow] flow diagram written to {path}")

    return pipeline, reference


@logs.catch(
    msg="scoring run failed",
    quiet=(BuildError, ModelDefinitionError, UserInputError),
)
def run_scoring(cfg: ScoringConfig, inst: Optional[Instrumentation] = None) -> RunResult:
    """
    Scoring Workflow: run (FINAL / FROZEN)

    input -> pipeline -> output / trap [/ measure]
    """
    inst = inst or Instrumentation()

    with inst.timer("workflow.build"):
        pipeline, _ = build_scoring_pipeline(cfg)

    runner = Runner(workers=cfg.workers, inst=inst)
    partitions = iter_records(cfg.input, cfg.delimiter, cfg.batch_size)

    with ExitStack() as stack:
        primary = stack.enter_context(TsvSink(cfg.output, pipeline.output_schema, cfg.delimiter))
        trap = stack.enter_context(TsvSink(cfg.trap, pipeline.trap_schema, cfg.delimiter))
        measure = None
        if pipeline.mode is not AggregationMode.NONE:
            measure = stack.enter_context(
                TsvSink(cfg.measure_path, pipeline.branch.measure_schema, cfg.delimiter)
            )

        with inst.timer("workflow.run"):
            result = runner.run(
                pipeline,
                partitions,
                primary=primary,
                trap=trap,
                measure=measure,
            )

    inst.report(f"{pipeline.name} {Path(cfg.input).name}")
    return result
