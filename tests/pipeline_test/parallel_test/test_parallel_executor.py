# tests/pipeline_test/parallel_test/test_parallel_executor.py
import os

import pytest

from batchscore.pipeline.parallel.executor import ParallelExecutor
from batchscore.pipeline.parallel.types import ParallelKind


def square(x: int) -> int:
    # uneven work so completion order differs from submission order
    total = 0
    for _ in range((10 - x) * 10_000):
        total += 1
    return x * x


def boom(x: int) -> int:
    if x == 3:
        raise ValueError("bad item 3")
    return x


def test_sequential_keeps_order():
    out = ParallelExecutor.run(
        kind=ParallelKind.PARTITION, items=range(5), handler=square, max_workers=1
    )
    assert out == [0, 1, 4, 9, 16]


def test_parallel_keeps_submission_order():
    out = ParallelExecutor.run(
        kind=ParallelKind.PARTITION, items=range(8), handler=square, max_workers=2
    )
    assert out == [x * x for x in range(8)]


def test_empty_items():
    assert ParallelExecutor.run(kind=ParallelKind.PARTITION, items=[], handler=square) == []


@pytest.mark.parametrize("workers", [1, 2])
def test_failure_propagates(workers):
    with pytest.raises(ValueError, match="bad item 3"):
        ParallelExecutor.run(
            kind=ParallelKind.PARTITION, items=range(5), handler=boom, max_workers=workers
        )


def test_resolve_workers_bounds():
    assert ParallelExecutor._resolve_workers([1, 2], 8) == 2
    assert ParallelExecutor._resolve_workers([1, 2, 3], 0) == 1
    assert ParallelExecutor.resolve_workers(3) == 3


def test_unset_workers_means_every_cpu(monkeypatch):
    monkeypatch.setattr(os, "cpu_count", lambda: 6)
    assert ParallelExecutor.resolve_workers(None) == 6
    assert ParallelExecutor._resolve_workers([1, 2], None) == 2


def test_shared_pool_across_calls():
    with ParallelExecutor.pool(2) as pool:
        first = ParallelExecutor.run(
            kind=ParallelKind.PARTITION, items=range(4), handler=square, pool=pool
        )
        second = ParallelExecutor.run(
            kind=ParallelKind.PARTITION, items=range(4, 8), handler=square, pool=pool
        )

    assert first + second == [x * x for x in range(8)]


def test_single_worker_has_no_pool():
    with ParallelExecutor.pool(1) as pool:
        assert pool is None
