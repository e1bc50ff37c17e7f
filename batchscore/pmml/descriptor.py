# batchscore/pmml/descriptor.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple
from xml.etree.ElementTree import Element

from batchscore.utils.errors import UnsupportedModelFamily

NUMERIC_DATA_TYPES = frozenset({"double", "float", "integer", "real"})


class ModelFamily(str, Enum):
    """
    Closed set of model families the Classifier can dispatch on.

    Values are the PMML model element names.
    """

    TREE = "TreeModel"
    REGRESSION = "RegressionModel"
    CLUSTERING = "ClusteringModel"
    GENERALIZED_REGRESSION = "GeneralRegressionModel"
    MINING = "MiningModel"

    @classmethod
    def from_tag(cls, tag: str) -> "ModelFamily":
        for family in cls:
            if family.value == tag:
                return family
        raise UnsupportedModelFamily(tag)


@dataclass(frozen=True)
class DataField:
    name: str
    optype: str = "continuous"
    data_type: str = "double"
    values: Tuple[str, ...] = ()

    @property
    def is_numeric(self) -> bool:
        return self.data_type in NUMERIC_DATA_TYPES and self.optype == "continuous"


@dataclass(frozen=True)
class MiningSchema:
    active: Tuple[str, ...] = ()
    target: Optional[str] = None


@dataclass(frozen=True)
class ModelDescriptor:
    """
    Parsed model definition (FROZEN)

    - model_type: declared family tag, exactly as written in the file
    - element: the model element holding family-specific parameters
    - data_fields: DataDictionary, shared by nested segment models
    """

    source: str
    model_type: str
    element: Element
    function_name: str = ""
    model_name: str = ""
    data_fields: Dict[str, DataField] = field(default_factory=dict)
    mining_schema: MiningSchema = MiningSchema()

    def is_numeric(self, name: str) -> bool:
        df = self.data_fields.get(name)
        return df.is_numeric if df is not None else True
