#!filepath: batchscore/observability/instrumentation.py
from __future__ import annotations

from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict

from batchscore.observability.metrics import MetricRecorder
from batchscore.observability.timer import Timer
from batchscore.utils.logger import logs


@dataclass
class Instrumentation:
    """
    Run-level instrumentation.

    Rules:
    1. the timeline only records leaf timers (record=True)
    2. parent timers (record=False) only bound wall time
    3. nothing here logs on the per-record path
    """

    enabled: bool = True

    def __post_init__(self):
        self._timer = Timer(enabled=self.enabled)
        self.metrics = MetricRecorder(enabled=self.enabled)
        # leaf_name -> elapsed seconds
        self.timeline: Dict[str, float] = OrderedDict()

    def timer(self, name: str, *, record: bool = True):
        inst = self

        @contextmanager
        def _ctx():
            if not inst.enabled:
                yield
                return

            inst._timer.start(name)
            try:
                yield
            finally:
                elapsed = inst._timer.end(name)
                if record:
                    inst.record_elapsed(name, elapsed)

        return _ctx()

    def record_elapsed(self, name: str, seconds: float) -> None:
        """Add time measured elsewhere (e.g. inside a worker process)."""
        if not self.enabled:
            return
        self.timeline[name] = self.timeline.get(name, 0.0) + seconds

    def record(self, name: str, value: Any) -> None:
        self.metrics.record(name, value)

    # ---------------------------------------------------------
    # report (cold path)
    # ---------------------------------------------------------
    def report(self, title: str) -> None:
        if not self.enabled:
            return

        logs.info(f"[Timeline] ===== {title} =====")
        total = 0.0
        for name, sec in self.timeline.items():
            logs.info(f"[Timeline] {str(name):<30} {sec:>8.3f}s")
            total += sec
        logs.info(f"[Timeline] Total{'':<27} {total:>8.3f}s")

        for name, value in self.metrics.metrics.items():
            logs.info(f"[Metric] {name:<32} {value}")


# -------------------------------------------------------------
# No-op Instrumentation
# -------------------------------------------------------------
class NoOpInstrumentation:
    """Used when observability is disabled."""

    enabled = False

    def timer(self, name: str, *, record: bool = True):
        return _NoOpTimer()

    def record_elapsed(self, name: str, seconds: float) -> None:
        pass

    def record(self, name: str, value: Any) -> None:
        pass

    def report(self, title: str) -> None:
        pass


class _NoOpTimer:
    def __enter__(self):
        pass

    def __exit__(self, exc_type, exc, tb):
        pass
