# batchscore/models/clustering.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple
from xml.etree.ElementTree import Element

import numpy as np

from batchscore.models.base import Label, ScoringModel
from batchscore.pmml.descriptor import ModelDescriptor, ModelFamily
from batchscore.pmml.parser import (
    find_child,
    iter_children,
    local_name,
    parse_array,
    require_attr,
    require_child,
)

_MEASURES = ("euclidean", "squaredEuclidean", "cityBlock", "chebychev")


@dataclass(frozen=True)
class Cluster:
    id: Optional[str]
    name: Optional[str]
    center: Tuple[float, ...]


class ClusteringModel(ScoringModel):
    """
    Center-based clustering: assign the record to the nearest cluster.

    Returns the cluster id, else its name, else its 1-based position.
    """

    family = ModelFamily.CLUSTERING

    def __init__(self, descriptor: ModelDescriptor, element: Element):
        super().__init__(descriptor, element)

        model_class = element.get("modelClass", "centerBased")
        if model_class != "centerBased":
            raise ValueError(f"unsupported ClusteringModel modelClass {model_class!r}")

        self.fields: Tuple[str, ...] = tuple(
            require_attr(f, "field")
            for f in iter_children(element, "ClusteringField")
            if f.get("isCenterField", "true") == "true"
        )
        self.field_weights: Tuple[float, ...] = tuple(
            float(f.get("fieldWeight", "1"))
            for f in iter_children(element, "ClusteringField")
            if f.get("isCenterField", "true") == "true"
        )

        measure = require_child(element, "ComparisonMeasure")
        kind = next((local_name(c.tag) for c in measure), None)
        if kind not in _MEASURES:
            raise ValueError(f"unsupported ComparisonMeasure {kind!r}")
        self.measure = kind

        self.clusters = tuple(
            self._parse_cluster(c) for c in iter_children(element, "Cluster")
        )
        if not self.clusters:
            raise ValueError("ClusteringModel without Cluster")
        if not self.fields:
            self.fields = self.active_fields
            self.field_weights = tuple(1.0 for _ in self.fields)

        for c in self.clusters:
            if len(c.center) != len(self.fields):
                raise ValueError(
                    f"cluster {c.id or c.name} has {len(c.center)} coordinates, "
                    f"expected {len(self.fields)}"
                )

        self._centers: Optional[np.ndarray] = None
        self._weights: Optional[np.ndarray] = None

    @staticmethod
    def _parse_cluster(element: Element) -> Cluster:
        array = find_child(element, "Array")
        if array is None:
            raise ValueError(f"cluster {element.get('id') or element.get('name')} has no center Array")
        return Cluster(
            id=element.get("id"),
            name=element.get("name"),
            center=tuple(float(v) for v in parse_array(array)),
        )

    def _prepare(self) -> None:
        self._centers = np.array([c.center for c in self.clusters], dtype=np.float64)
        self._weights = np.array(self.field_weights, dtype=np.float64)

    def evaluate(self, record: Mapping[str, Any]) -> Label:
        x = np.array(
            [self.numeric_value(record, f) for f in self.fields],
            dtype=np.float64,
        )
        delta = np.abs(self._centers - x)

        if self.measure == "cityBlock":
            dist = (delta * self._weights).sum(axis=1)
        elif self.measure == "chebychev":
            dist = (delta * self._weights).max(axis=1)
        else:
            dist = (delta * delta * self._weights).sum(axis=1)
            if self.measure == "euclidean":
                dist = np.sqrt(dist)

        best = int(np.argmin(dist))
        cluster = self.clusters[best]
        return cluster.id or cluster.name or str(best + 1)
