from .descriptor import DataField, MiningSchema, ModelDescriptor, ModelFamily
from .parser import parse_pmml, parse_pmml_text

__all__ = [
    "DataField",
    "MiningSchema",
    "ModelDescriptor",
    "ModelFamily",
    "parse_pmml",
    "parse_pmml_text",
]
