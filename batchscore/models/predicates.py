# batchscore/models/predicates.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from xml.etree.ElementTree import Element

from batchscore.models.base import is_missing
from batchscore.pmml.descriptor import DataField
from batchscore.pmml.parser import local_name, parse_array, require_attr, require_child
from batchscore.utils.errors import ScoringError

PREDICATE_TAGS = frozenset(
    {"True", "False", "SimplePredicate", "SimpleSetPredicate", "CompoundPredicate"}
)

_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equal": lambda a, b: a == b,
    "notEqual": lambda a, b: a != b,
    "lessThan": lambda a, b: a < b,
    "lessOrEqual": lambda a, b: a <= b,
    "greaterThan": lambda a, b: a > b,
    "greaterOrEqual": lambda a, b: a >= b,
}


class Predicate(ABC):

    @abstractmethod
    def evaluate(self, record: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def fields(self) -> Tuple[str, ...]:
        return ()


class TruePredicate(Predicate):
    def evaluate(self, record):
        return True


class FalsePredicate(Predicate):
    def evaluate(self, record):
        return False


def _coerce(record: Mapping[str, Any], name: str, value: Any, numeric: bool):
    if not numeric:
        return str(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ScoringError(record, f"non-numeric value {value!r} for {name}") from None


@dataclass(frozen=True)
class SimplePredicate(Predicate):
    field: str
    operator: str
    value: Optional[str]
    numeric: bool

    def evaluate(self, record):
        raw = record.get(self.field)
        if self.operator == "isMissing":
            return is_missing(raw)
        if self.operator == "isNotMissing":
            return not is_missing(raw)
        if is_missing(raw):
            return False

        compare = _COMPARATORS[self.operator]
        return compare(
            _coerce(record, self.field, raw, self.numeric),
            _coerce(record, self.field, self.value, self.numeric),
        )

    def fields(self):
        return (self.field,)


@dataclass(frozen=True)
class SimpleSetPredicate(Predicate):
    field: str
    is_in: bool
    values: frozenset

    def evaluate(self, record):
        raw = record.get(self.field)
        if is_missing(raw):
            return False
        return (str(raw) in self.values) == self.is_in

    def fields(self):
        return (self.field,)


@dataclass(frozen=True)
class CompoundPredicate(Predicate):
    operator: str
    predicates: Tuple[Predicate, ...]

    def evaluate(self, record):
        if self.operator == "and":
            return all(p.evaluate(record) for p in self.predicates)
        if self.operator == "or":
            return any(p.evaluate(record) for p in self.predicates)
        if self.operator == "xor":
            return sum(p.evaluate(record) for p in self.predicates) % 2 == 1

        # surrogate: first predicate whose inputs are all present decides
        for p in self.predicates[:-1]:
            if not any(is_missing(record.get(f)) for f in p.fields()):
                return p.evaluate(record)
        return self.predicates[-1].evaluate(record)

    def fields(self):
        return tuple(f for p in self.predicates for f in p.fields())


# ------------------------------------------------------------------
# compile
# ------------------------------------------------------------------
def find_predicate(element: Element) -> Optional[Element]:
    return next((c for c in element if local_name(c.tag) in PREDICATE_TAGS), None)


def compile_predicate(element: Element, data_fields: Mapping[str, DataField]) -> Predicate:
    tag = local_name(element.tag)

    if tag == "True":
        return TruePredicate()
    if tag == "False":
        return FalsePredicate()

    if tag == "SimplePredicate":
        name = require_attr(element, "field")
        operator = require_attr(element, "operator")
        if operator not in _COMPARATORS and operator not in ("isMissing", "isNotMissing"):
            raise ValueError(f"unknown SimplePredicate operator {operator!r}")
        df = data_fields.get(name)
        return SimplePredicate(
            field=name,
            operator=operator,
            value=element.get("value"),
            numeric=df.is_numeric if df is not None else True,
        )

    if tag == "SimpleSetPredicate":
        operator = require_attr(element, "booleanOperator")
        if operator not in ("isIn", "isNotIn"):
            raise ValueError(f"unknown SimpleSetPredicate operator {operator!r}")
        return SimpleSetPredicate(
            field=require_attr(element, "field"),
            is_in=operator == "isIn",
            values=frozenset(parse_array(require_child(element, "Array"))),
        )

    if tag == "CompoundPredicate":
        operator = require_attr(element, "booleanOperator")
        if operator not in ("and", "or", "xor", "surrogate"):
            raise ValueError(f"unknown CompoundPredicate operator {operator!r}")
        children = tuple(
            compile_predicate(c, data_fields)
            for c in element
            if local_name(c.tag) in PREDICATE_TAGS
        )
        if not children:
            raise ValueError("CompoundPredicate without predicates")
        return CompoundPredicate(operator=operator, predicates=children)

    raise ValueError(f"unsupported predicate <{tag}>")
