# batchscore/classifier.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple
from xml.etree.ElementTree import Element

from batchscore import logs
from batchscore.models import (
    ClusteringModel,
    GeneralizedRegressionModel,
    MiningModel,
    RegressionModel,
    ScoringModel,
    TreeModel,
)
from batchscore.pmml.descriptor import ModelDescriptor, ModelFamily
from batchscore.pmml.parser import local_name, parse_pmml
from batchscore.utils.errors import MalformedDefinition, NotPrepared


def build_scoring_model(descriptor: ModelDescriptor, element: Element) -> ScoringModel:
    """
    Closed family dispatch.

    All model families must be explicitly registered in _REGISTRY.
    Unknown tags fail with UnsupportedModelFamily before anything is built.
    """
    family = ModelFamily.from_tag(local_name(element.tag))
    return _REGISTRY[family](descriptor, element)


_REGISTRY: Dict[ModelFamily, Callable[[ModelDescriptor, Element], ScoringModel]] = {
    ModelFamily.TREE: TreeModel,
    ModelFamily.REGRESSION: RegressionModel,
    ModelFamily.CLUSTERING: ClusteringModel,
    ModelFamily.GENERALIZED_REGRESSION: GeneralizedRegressionModel,
    ModelFamily.MINING: lambda d, e: MiningModel(d, e, factory=build_scoring_model),
}


class Classifier:
    """
    Classifier (FINAL / FROZEN)

    Wraps exactly one ScoringModel built from a model definition.

    Contract:
      - load(): parse + verify family + construct
      - prepare(): once, before the first classify()
      - classify(): pure, never mutates the record
    """

    def __init__(self, model: ScoringModel, *, source: str = "<memory>"):
        self.model = model
        self.source = source
        self._prepared = False

    # --------------------------------------------------
    @classmethod
    def load(cls, source: str | Path) -> "Classifier":
        descriptor = parse_pmml(source)
        return cls.from_descriptor(descriptor)

    @classmethod
    def from_descriptor(cls, descriptor: ModelDescriptor) -> "Classifier":
        try:
            model = build_scoring_model(descriptor, descriptor.element)
        except (ValueError, TypeError, KeyError) as e:
            raise MalformedDefinition(
                descriptor.source, f"{descriptor.model_type}: {e}"
            ) from e

        logs.info(
            f"[Classifier] loaded {descriptor.source} "
            f"model_type={descriptor.model_type} "
            f"inputs={list(model.active_fields)} predictor={model.target}"
        )
        return cls(model, source=descriptor.source)

    # --------------------------------------------------
    @property
    def model_type(self) -> ModelFamily:
        return self.model.family

    @property
    def input_fields(self) -> Tuple[str, ...]:
        return self.model.active_fields

    @property
    def predictor(self) -> Optional[str]:
        return self.model.target

    @property
    def prepared(self) -> bool:
        return self._prepared

    # --------------------------------------------------
    def prepare(self) -> None:
        """
        Called immediately before the enclosing pipeline starts
        processing records.
        """
        if self._prepared:
            logs.debug(f"[Classifier] {self.source} already prepared")
            return
        self.model.prepare()
        self._prepared = True

    def classify(self, record: Mapping[str, Any], schema: Sequence[str]) -> str:
        if not self._prepared:
            raise NotPrepared(f"Classifier for {self.source} used before prepare()")
        return self.model.classify(record, schema)
