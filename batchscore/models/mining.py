# batchscore/models/mining.py
from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Tuple
from xml.etree.ElementTree import Element

from batchscore.models.base import Label, ScoringModel
from batchscore.models.predicates import (
    PREDICATE_TAGS,
    Predicate,
    compile_predicate,
    find_predicate,
)
from batchscore.pmml.descriptor import ModelDescriptor, ModelFamily
from batchscore.pmml.parser import iter_children, local_name, require_attr, require_child
from batchscore.utils.errors import ScoringError

ModelFactory = Callable[[ModelDescriptor, Element], ScoringModel]

_VOTE_METHODS = ("majorityVote", "weightedMajorityVote")
_NUMERIC_METHODS = ("average", "weightedAverage", "median", "max", "sum")


@dataclass(frozen=True)
class Segment:
    id: str
    weight: float
    predicate: Predicate
    model: ScoringModel


class MiningModel(ScoringModel):
    """
    Ensemble of segment models.

    Segment models are built through the same closed factory as the
    top-level model, so a nested unsupported family fails the load.
    """

    family = ModelFamily.MINING

    def __init__(self, descriptor: ModelDescriptor, element: Element, *, factory: ModelFactory):
        super().__init__(descriptor, element)

        segmentation = require_child(element, "Segmentation")
        self.method = require_attr(segmentation, "multipleModelMethod")
        if self.method not in _VOTE_METHODS + _NUMERIC_METHODS + ("selectFirst",):
            raise ValueError(f"unsupported multipleModelMethod {self.method!r}")

        segments: List[Segment] = []
        for i, seg in enumerate(iter_children(segmentation, "Segment"), start=1):
            predicate_el = find_predicate(seg)
            if predicate_el is None:
                raise ValueError(f"segment {seg.get('id', i)} has no predicate")

            model_el = next(
                (
                    c for c in seg
                    if local_name(c.tag) not in PREDICATE_TAGS and local_name(c.tag) != "Extension"
                ),
                None,
            )
            if model_el is None:
                raise ValueError(f"segment {seg.get('id', i)} has no model")

            segments.append(
                Segment(
                    id=seg.get("id", str(i)),
                    weight=float(seg.get("weight", "1")),
                    predicate=compile_predicate(predicate_el, self.data_fields),
                    model=factory(descriptor, model_el),
                )
            )

        if not segments:
            raise ValueError("MiningModel without Segment")
        self.segments: Tuple[Segment, ...] = tuple(segments)

    def _prepare(self) -> None:
        for seg in self.segments:
            seg.model.prepare()

    # --------------------------------------------------
    def evaluate(self, record: Mapping[str, Any]) -> Label:
        selected = [s for s in self.segments if s.predicate.evaluate(record)]
        if not selected:
            raise ScoringError(record, "no segment predicate holds")

        if self.method == "selectFirst":
            return selected[0].model.evaluate(record)

        if self.method in _VOTE_METHODS:
            weighted = self.method == "weightedMajorityVote"
            votes: Dict[str, float] = {}
            for s in selected:
                label = str(s.model.evaluate(record))
                votes[label] = votes.get(label, 0.0) + (s.weight if weighted else 1.0)
            # ties resolve to the first label seen
            return max(votes, key=votes.get)

        values = [self._as_float(record, s) for s in selected]

        if self.method == "average":
            return sum(values) / len(values)
        if self.method == "weightedAverage":
            total = sum(s.weight for s in selected)
            if total == 0:
                raise ScoringError(record, "selected segments have zero total weight")
            return sum(v * s.weight for v, s in zip(values, selected)) / total
        if self.method == "median":
            return float(statistics.median(values))
        if self.method == "max":
            return max(values)
        return sum(values)

    @staticmethod
    def _as_float(record: Mapping[str, Any], segment: Segment) -> float:
        value = segment.model.evaluate(record)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ScoringError(
                record, f"segment {segment.id} returned non-numeric {value!r}"
            ) from None
