# batchscore/models/tree.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple
from xml.etree.ElementTree import Element

from batchscore.models.base import Label, ScoringModel
from batchscore.models.predicates import Predicate, compile_predicate, find_predicate
from batchscore.pmml.descriptor import ModelDescriptor, ModelFamily
from batchscore.pmml.parser import iter_children, require_child
from batchscore.utils.errors import ScoringError


@dataclass(frozen=True)
class TreeNode:
    id: Optional[str]
    score: Optional[str]
    predicate: Predicate
    children: Tuple["TreeNode", ...]


class TreeModel(ScoringModel):
    """
    Decision tree.

    Traversal: starting at the root, descend into the first child whose
    predicate holds; stop when no child holds and return the score of the
    last node reached (noTrueChildStrategy=returnLastPrediction).
    """

    family = ModelFamily.TREE

    def __init__(self, descriptor: ModelDescriptor, element: Element):
        super().__init__(descriptor, element)
        self.root = self._parse_node(require_child(element, "Node"))

    def _parse_node(self, element: Element) -> TreeNode:
        predicate_el = find_predicate(element)
        if predicate_el is None:
            raise ValueError(f"<Node id={element.get('id')}> has no predicate")

        return TreeNode(
            id=element.get("id"),
            score=element.get("score"),
            predicate=compile_predicate(predicate_el, self.data_fields),
            children=tuple(
                self._parse_node(c) for c in iter_children(element, "Node")
            ),
        )

    def evaluate(self, record: Mapping[str, Any]) -> Label:
        node = self.root
        if not node.predicate.evaluate(record):
            raise ScoringError(record, "root node predicate does not hold")

        last_score = node.score
        while True:
            nxt = next((c for c in node.children if c.predicate.evaluate(record)), None)
            if nxt is None:
                break
            node = nxt
            if node.score is not None:
                last_score = node.score

        if last_score is None:
            raise ScoringError(record, f"tree node {node.id} has no score")
        return last_score
