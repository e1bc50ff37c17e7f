# batchscore/pipeline/parallel/executor.py
from __future__ import annotations

import os
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple, TypeVar

from batchscore.pipeline.parallel.types import ParallelKind
from batchscore.utils.logger import logs

T = TypeVar("T")
R = TypeVar("R")


class ParallelExecutor:
    """
    ParallelExecutor

    - run() without a pool: one ProcessPoolExecutor per call
    - run() with a pool from ParallelExecutor.pool(): reuse it across calls
    - handler and items must be picklable when workers > 1
    - results come back in submission order, whatever the completion order
    """

    @staticmethod
    def resolve_workers(max_workers: Optional[int]) -> int:
        """None means every CPU."""
        if max_workers is None:
            return os.cpu_count() or 1
        return max(1, max_workers)

    @staticmethod
    @contextmanager
    def pool(
        workers: int,
        initializer: Optional[Callable[..., None]] = None,
        initargs: Tuple[Any, ...] = (),
    ) -> Iterator[Optional[Executor]]:
        """A process pool shared by several run() calls; None when workers == 1."""
        if workers <= 1:
            yield None
            return

        logs.debug(f"[ParallelExecutor] pool open workers={workers}")
        with ProcessPoolExecutor(
            max_workers=workers, initializer=initializer, initargs=initargs
        ) as pool:
            yield pool

    @staticmethod
    def run(
        *,
        kind: ParallelKind,
        items: Iterable[T],
        handler: Callable[[T], R],
        max_workers: Optional[int] = None,
        pool: Optional[Executor] = None,
    ) -> List[R]:
        items = list(items)
        if not items:
            logs.debug(f"[ParallelExecutor] no items to process kind={kind.value}")
            return []

        if pool is not None:
            logs.debug(f"[ParallelExecutor] start kind={kind.value} total={len(items)} pool=shared")
            return ParallelExecutor._collect(pool, items, handler)

        workers = ParallelExecutor._resolve_workers(items, max_workers)
        logs.debug(
            f"[ParallelExecutor] start kind={kind.value} total={len(items)} workers={workers}"
        )

        if workers == 1:
            return ParallelExecutor._run_sequential(items, handler)
        with ProcessPoolExecutor(max_workers=workers) as own:
            return ParallelExecutor._collect(own, items, handler)

    # ---------------- internal ----------------

    @staticmethod
    def _resolve_workers(items: List[Any], max_workers: Optional[int]) -> int:
        return min(ParallelExecutor.resolve_workers(max_workers), len(items))

    @staticmethod
    def _run_sequential(items: List[T], handler: Callable[[T], R]) -> List[R]:
        return [handler(item) for item in items]

    @staticmethod
    def _collect(pool: Executor, items: List[T], handler: Callable[[T], R]) -> List[R]:
        results: List[Any] = [None] * len(items)

        futures = {pool.submit(handler, item): i for i, item in enumerate(items)}
        for fut in as_completed(futures):
            results[futures[fut]] = fut.result()

        return results
