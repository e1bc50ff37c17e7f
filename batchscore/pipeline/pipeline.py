#!filepath: batchscore/pipeline/pipeline.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from batchscore.classifier import Classifier
from batchscore.config.scoring_config import AggregationMode
from batchscore.pipeline.aggregations import AggregationStage
from batchscore.pipeline.record import Schema
from batchscore.pipeline.stage import Stage


@dataclass(frozen=True)
class Branch:
    """
    Measure branch: scored records -> stages -> aggregation -> measure sink.
    """

    stages: Tuple[Stage, ...]
    aggregation: AggregationStage
    input_schema: Schema

    @property
    def measure_schema(self) -> Schema:
        return self.aggregation.output_schema()


@dataclass(frozen=True)
class Pipeline:
    """
    Pipeline (FINAL / FROZEN)

    Assembled once by PipelineBuilder, never modified afterwards.

    Topology:
      source -> head -> primary sink
                  \\-> branch.stages -> branch.aggregation -> measure sink
      every trapping stage -> trap sink
    """

    name: str
    source_schema: Schema
    head: Tuple[Stage, ...]
    output_schema: Schema
    trap_schema: Schema
    trap_reason_field: str
    mode: AggregationMode = AggregationMode.NONE
    branch: Optional[Branch] = None
    classifier: Optional[Classifier] = None
    debug: bool = False
    strict: bool = False
    snapshot_limit: int = 20

    @property
    def stages(self) -> Tuple[Stage, ...]:
        if self.branch is None:
            return self.head
        return self.head + self.branch.stages + (self.branch.aggregation,)

    # --------------------------------------------------
    # diagnostics
    # --------------------------------------------------
    def describe(self) -> List[str]:
        lines = [f"source{list(self.source_schema)}"]
        lines += [f"  -> {s.describe()}" for s in self.head]
        lines.append(f"  -> primary{list(self.output_schema)}")
        if self.branch is not None:
            lines += [f"  => {s.describe()}" for s in self.branch.stages]
            lines.append(f"  => {self.branch.aggregation.describe()}")
            lines.append(f"  => measure{list(self.branch.measure_schema)}")
        lines.append(f"  trap{list(self.trap_schema)}")
        return lines

    def to_dot(self) -> str:
        """Render the flow as a Graphviz digraph."""
        out = [f'digraph "{self.name}" {{', "  rankdir=LR;"]
        nodes: List[Tuple[str, str, str]] = [("source", "source", "box")]

        def node_id(i: int) -> str:
            return f"s{i}"

        edges: List[str] = []
        prev = "source"
        for i, stage in enumerate(self.head):
            nodes.append((node_id(i), stage.describe(), "ellipse"))
            edges.append(f'  "{prev}" -> "{node_id(i)}";')
            prev = node_id(i)
        nodes.append(("primary", "primary sink", "box"))
        edges.append(f'  "{prev}" -> "primary";')

        if self.branch is not None:
            offset = len(self.head)
            branch_stages = self.branch.stages + (self.branch.aggregation,)
            for j, stage in enumerate(branch_stages):
                nid = node_id(offset + j)
                nodes.append((nid, stage.describe(), "ellipse"))
                edges.append(f'  "{prev}" -> "{nid}";')
                prev = nid
            nodes.append(("measure", "measure sink", "box"))
            edges.append(f'  "{prev}" -> "measure";')

        nodes.append(("trap", "trap sink", "box"))
        for i, stage in enumerate(self.stages):
            if stage.traps:
                edges.append(f'  "{node_id(i)}" -> "trap" [style=dashed];')

        for nid, label, shape in nodes:
            out.append(f'  "{nid}" [label="{label}", shape={shape}];')
        out.extend(edges)
        out.append("}")
        return "\n".join(out)
