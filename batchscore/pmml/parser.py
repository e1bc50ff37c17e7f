# batchscore/pmml/parser.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, List, Optional
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import Element

from batchscore import logs
from batchscore.pmml.descriptor import DataField, MiningSchema, ModelDescriptor
from batchscore.utils.errors import MalformedDefinition

# PMML root children that are never a model element
_NON_MODEL_ELEMENTS = frozenset(
    {
        "Header",
        "MiningBuildTask",
        "DataDictionary",
        "TransformationDictionary",
        "Extension",
    }
)

_TARGET_USAGE = frozenset({"predicted", "target"})


# ------------------------------------------------------------------
# namespace-agnostic helpers (PMML 3.x / 4.x namespaces all accepted)
# ------------------------------------------------------------------
def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def iter_children(element: Element, name: str) -> Iterator[Element]:
    for child in element:
        if local_name(child.tag) == name:
            yield child


def find_child(element: Element, name: str) -> Optional[Element]:
    return next(iter_children(element, name), None)


def require_child(element: Element, name: str) -> Element:
    child = find_child(element, name)
    if child is None:
        raise ValueError(f"<{local_name(element.tag)}> has no <{name}>")
    return child


def require_attr(element: Element, name: str) -> str:
    value = element.get(name)
    if value is None:
        raise ValueError(f"<{local_name(element.tag)}> missing attribute {name!r}")
    return value


def parse_array(element: Element) -> List[str]:
    """<Array n="3" type="real">1.0 2.0 3.0</Array>"""
    text = (element.text or "").strip()
    if not text:
        return []
    return [tok.strip('"') for tok in text.split()]


# ------------------------------------------------------------------
# document
# ------------------------------------------------------------------
def parse_pmml(source: str | Path) -> ModelDescriptor:
    """
    Read a PMML file into a ModelDescriptor.

    Raises MalformedDefinition on I/O or XML errors, or when no model
    element is present. The family tag is NOT validated here.
    """
    source = str(source)
    try:
        root = ET.parse(source).getroot()
    except OSError as e:
        raise MalformedDefinition(source, f"cannot read: {e}") from e
    except ET.ParseError as e:
        raise MalformedDefinition(source, f"XML parse error: {e}") from e

    return parse_root(root, source=source)


def parse_pmml_text(text: str, source: str = "<string>") -> ModelDescriptor:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise MalformedDefinition(source, f"XML parse error: {e}") from e

    return parse_root(root, source=source)


def parse_root(root: Element, *, source: str) -> ModelDescriptor:
    if local_name(root.tag) != "PMML":
        raise MalformedDefinition(source, f"root element is <{local_name(root.tag)}>, expected <PMML>")

    dictionary = find_child(root, "DataDictionary")
    if dictionary is None:
        raise MalformedDefinition(source, "no <DataDictionary>")

    try:
        data_fields = parse_data_dictionary(dictionary)
    except ValueError as e:
        raise MalformedDefinition(source, str(e)) from e

    model = next(
        (c for c in root if local_name(c.tag) not in _NON_MODEL_ELEMENTS),
        None,
    )
    if model is None:
        raise MalformedDefinition(source, "no model element")

    descriptor = ModelDescriptor(
        source=source,
        model_type=local_name(model.tag),
        element=model,
        function_name=model.get("functionName", ""),
        model_name=model.get("modelName", ""),
        data_fields=data_fields,
        mining_schema=parse_mining_schema(model),
    )

    logs.debug(
        f"[PMML] parsed {source} model_type={descriptor.model_type} "
        f"fields={len(data_fields)}"
    )
    return descriptor


def parse_data_dictionary(dictionary: Element) -> Dict[str, DataField]:
    fields: Dict[str, DataField] = {}
    for el in iter_children(dictionary, "DataField"):
        name = require_attr(el, "name")
        fields[name] = DataField(
            name=name,
            optype=el.get("optype", "continuous"),
            data_type=el.get("dataType", "double"),
            values=tuple(
                require_attr(v, "value") for v in iter_children(el, "Value")
            ),
        )
    return fields


def parse_mining_schema(model: Element) -> MiningSchema:
    schema = find_child(model, "MiningSchema")
    if schema is None:
        return MiningSchema()

    active: List[str] = []
    target: Optional[str] = None

    for el in iter_children(schema, "MiningField"):
        name = el.get("name")
        if name is None:
            continue
        usage = el.get("usageType", "active")
        if usage in _TARGET_USAGE:
            target = target or name
        elif usage == "active":
            active.append(name)

    return MiningSchema(active=tuple(active), target=target)
