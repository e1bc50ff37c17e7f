#!filepath: batchscore/pipeline/runner.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from itertools import islice
from time import perf_counter
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from batchscore import logs
from batchscore.observability.instrumentation import Instrumentation, NoOpInstrumentation
from batchscore.pipeline.aggregations import Partial
from batchscore.pipeline.parallel.executor import ParallelExecutor
from batchscore.pipeline.parallel.types import ParallelKind
from batchscore.pipeline.pipeline import Pipeline
from batchscore.pipeline.record import Partition, Record, TrapRecord
from batchscore.pipeline.stage import Stage
from batchscore.tables.writer import RecordSink


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    TRAPPED = "completed_with_traps"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    status: RunStatus
    records_processed: int
    records_output: int
    records_trapped: int
    assertion_violations: int
    measures: Tuple[Record, ...] = ()
    snapshots: Tuple[Record, ...] = ()
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is not RunStatus.FAILED

    @property
    def exit_code(self) -> int:
        return {
            RunStatus.SUCCEEDED: 0,
            RunStatus.FAILED: 1,
            RunStatus.TRAPPED: 3,
        }[self.status]


@dataclass
class PartitionResult:
    index: int
    processed: int = 0
    outputs: List[Record] = field(default_factory=list)
    traps: List[TrapRecord] = field(default_factory=list)
    violations: int = 0
    partial: Partial = field(default_factory=dict)
    snapshots: List[Record] = field(default_factory=list)
    elapsed: float = 0.0


# ----------------------------------------------------------------------
# worker side (module level so it pickles)
# ----------------------------------------------------------------------
def _run_chain(
    stages: Sequence[Stage], record: Record
) -> Tuple[Union[Record, TrapRecord], int]:
    violations = 0
    current: Union[Record, TrapRecord] = record
    for stage in stages:
        current = stage.process(current)
        if isinstance(current, TrapRecord):
            return current, violations
        if stage.assertion_failed(current):
            violations += 1
    return current, violations


def process_partition(pipeline: Pipeline, task: Tuple[int, Partition]) -> PartitionResult:
    """
    Push one partition through the pipeline.

    Pure with respect to the pipeline: the only state produced is the
    returned PartitionResult. Trapped records never reach later stages,
    and records the reader already refused go straight to the traps.
    """
    index, records = task
    result = PartitionResult(index=index)
    start = perf_counter()

    branch = pipeline.branch
    branch_stages: Tuple[Stage, ...] = ()
    if branch is not None:
        branch_stages = branch.stages + (branch.aggregation,)

    for record in records:
        result.processed += 1
        if isinstance(record, TrapRecord):
            result.traps.append(record)
            continue

        scored, n = _run_chain(pipeline.head, record)
        result.violations += n
        if isinstance(scored, TrapRecord):
            result.traps.append(scored)
            continue

        result.outputs.append(scored)
        if pipeline.debug and len(result.snapshots) < pipeline.snapshot_limit:
            result.snapshots.append(dict(scored))

        if branch is None:
            continue

        measured, n = _run_chain(branch_stages, scored)
        result.violations += n
        if isinstance(measured, TrapRecord):
            result.traps.append(measured)
            continue
        branch.aggregation.accumulate(result.partial, measured)

    result.elapsed = perf_counter() - start
    return result


_WORKER_PIPELINE: Optional[Pipeline] = None


def _install_pipeline(pipeline: Pipeline) -> None:
    """Pool initializer: each worker unpickles the pipeline once."""
    global _WORKER_PIPELINE
    _WORKER_PIPELINE = pipeline


def _process_installed(task: Tuple[int, Partition]) -> PartitionResult:
    return process_partition(_WORKER_PIPELINE, task)


# ----------------------------------------------------------------------
# driver side
# ----------------------------------------------------------------------
class Runner:
    """
    Runner (FINAL)

    - prepares the classifier once, before the first record
    - resolves `workers` once (None: every CPU) and keeps one process
      pool for the whole run
    - processes partitions in windows of `workers`, in order
    - writes outputs and traps as each window completes
    - merges aggregation partials, then emits measures once
    - strict violations do not stop the run; they fail it at the end
    """

    def __init__(self, workers: Optional[int] = 1, inst: Optional[Instrumentation] = None):
        self.workers = workers
        self.inst = inst or NoOpInstrumentation()

    def run(
        self,
        pipeline: Pipeline,
        partitions: Iterable[Partition],
        *,
        primary: Optional[RecordSink] = None,
        trap: Optional[RecordSink] = None,
        measure: Optional[RecordSink] = None,
    ) -> RunResult:
        if pipeline.classifier is not None:
            pipeline.classifier.prepare()

        workers = ParallelExecutor.resolve_workers(self.workers)
        logs.info(f"[Runner] start {pipeline.name} workers={workers}")
        start = perf_counter()

        processed = output = trapped = violations = 0
        merged: Partial = {}
        snapshots: List[Record] = []

        with ParallelExecutor.pool(
            workers, initializer=_install_pipeline, initargs=(pipeline,)
        ) as pool:
            handler = _process_installed if pool is not None else partial(process_partition, pipeline)

            for window in self._windows(enumerate(partitions), workers):
                with self.inst.timer("runner.window", record=False):
                    results = ParallelExecutor.run(
                        kind=ParallelKind.PARTITION,
                        items=window,
                        handler=handler,
                        max_workers=workers,
                        pool=pool,
                    )

                for res in results:
                    processed += res.processed
                    output += len(res.outputs)
                    trapped += len(res.traps)
                    violations += res.violations
                    self.inst.record_elapsed("runner.partition", res.elapsed)

                    if primary is not None:
                        primary.write(res.outputs)
                    if trap is not None:
                        trap.write([t.to_row(pipeline.trap_reason_field) for t in res.traps])
                    for t in res.traps:
                        logs.debug(f"[Runner] trapped by {t.stage}: {t.reason}")

                    if pipeline.branch is not None:
                        pipeline.branch.aggregation.merge_into(merged, res.partial)

                    room = pipeline.snapshot_limit - len(snapshots)
                    if room > 0:
                        snapshots.extend(res.snapshots[:room])

        measures: List[Record] = []
        if pipeline.branch is not None:
            measures = pipeline.branch.aggregation.emit(merged)
            if measure is not None:
                measure.write(measures)

        if pipeline.debug:
            for snap in snapshots:
                logs.info(f"[Debug] {snap}")

        if violations and pipeline.strict:
            status = RunStatus.FAILED
        elif trapped:
            status = RunStatus.TRAPPED
        else:
            status = RunStatus.SUCCEEDED

        elapsed = perf_counter() - start
        self.inst.record("records_processed", processed)
        self.inst.record("records_trapped", trapped)
        self.inst.record("assertion_violations", violations)

        logs.info(
            f"[Runner] done {pipeline.name} status={status.value} "
            f"processed={processed} output={output} trapped={trapped} "
            f"violations={violations} measures={len(measures)} elapsed={elapsed:.3f}s"
        )
        if status is RunStatus.FAILED:
            logs.error(f"[Runner] {violations} strict assertion violation(s)")

        return RunResult(
            status=status,
            records_processed=processed,
            records_output=output,
            records_trapped=trapped,
            assertion_violations=violations,
            measures=tuple(measures),
            snapshots=tuple(snapshots),
            elapsed=elapsed,
        )

    @staticmethod
    def _windows(items: Iterable[Any], size: int) -> Iterator[List[Any]]:
        it = iter(items)
        while True:
            window = list(islice(it, size))
            if not window:
                return
            yield window
