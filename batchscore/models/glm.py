# batchscore/models/glm.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from xml.etree.ElementTree import Element

import numpy as np

from batchscore.models.base import Label, ScoringModel
from batchscore.pmml.descriptor import ModelDescriptor, ModelFamily
from batchscore.pmml.parser import find_child, iter_children, require_attr, require_child
from batchscore.utils.errors import ScoringError


def _power(eta: float, p: float) -> float:
    return math.exp(eta) if p == 0 else eta ** (1.0 / p)


# linkFunction -> inverse link (eta, linkParameter) -> mu
_INVERSE_LINKS: Dict[str, Callable[[float, float], float]] = {
    "identity": lambda eta, p: eta,
    "log": lambda eta, p: math.exp(eta),
    "logit": lambda eta, p: 1.0 / (1.0 + math.exp(-eta)),
    "probit": lambda eta, p: 0.5 * (1.0 + math.erf(eta / math.sqrt(2.0))),
    "cloglog": lambda eta, p: 1.0 - math.exp(-math.exp(eta)),
    "loglog": lambda eta, p: math.exp(-math.exp(-eta)),
    "inverse": lambda eta, p: 1.0 / eta,
    "power": _power,
}


@dataclass(frozen=True)
class PPCell:
    predictor: str
    parameter: str
    value: str


class GeneralizedRegressionModel(ScoringModel):
    """
    GeneralRegressionModel.

    eta = offset + sum_p beta_p * x_p, where x_p is the product of the
    PPMatrix cells of parameter p (factor cells are 0/1 indicators,
    covariate cells raise the value to the cell exponent).

    - regression / generalLinear: identity link
    - generalizedLinear: inverse of linkFunction
    - multinomialLogistic (or functionName=classification): softmax over
      target categories, reference category has eta = 0
    """

    family = ModelFamily.GENERALIZED_REGRESSION

    _MODEL_TYPES = ("regression", "generalLinear", "generalizedLinear", "multinomialLogistic")

    def __init__(self, descriptor: ModelDescriptor, element: Element):
        super().__init__(descriptor, element)

        self.model_type = require_attr(element, "modelType")
        if self.model_type not in self._MODEL_TYPES:
            raise ValueError(f"unsupported GeneralRegressionModel modelType {self.model_type!r}")

        self.classification = (
            self.model_type == "multinomialLogistic" or self.function_name == "classification"
        )

        link = element.get("linkFunction", "identity")
        if self.model_type != "generalizedLinear":
            link = "logit" if self.classification else "identity"
        if link not in _INVERSE_LINKS:
            raise ValueError(f"unsupported linkFunction {link!r}")
        self.link = link
        self.link_parameter = float(element.get("linkParameter", "1"))
        self.offset = float(element.get("offsetValue", "0"))
        self.reference_category = element.get("targetReferenceCategory")

        self.parameters: Tuple[str, ...] = tuple(
            require_attr(p, "name")
            for p in iter_children(require_child(element, "ParameterList"), "Parameter")
        )
        self.factors = self._predictor_names(element, "FactorList")
        self.covariates = self._predictor_names(element, "CovariateList")

        pp = find_child(element, "PPMatrix")
        self.cells: Tuple[PPCell, ...] = tuple(
            PPCell(
                predictor=require_attr(c, "predictorName"),
                parameter=require_attr(c, "parameterName"),
                value=require_attr(c, "value"),
            )
            for c in (iter_children(pp, "PPCell") if pp is not None else ())
        )

        # (parameter, category) -> beta
        self.betas: Dict[Tuple[str, Optional[str]], float] = {}
        categories: List[str] = []
        for c in iter_children(require_child(element, "ParamMatrix"), "PCell"):
            category = c.get("targetCategory")
            if category is not None and category not in categories:
                categories.append(category)
            self.betas[(require_attr(c, "parameterName"), category)] = float(require_attr(c, "beta"))

        if self.classification:
            if not categories:
                raise ValueError("classification GeneralRegressionModel without targetCategory cells")
            if self.reference_category is not None and self.reference_category not in categories:
                categories.append(self.reference_category)
        self.categories: Tuple[Optional[str], ...] = tuple(categories) if self.classification else (None,)

        unknown = {c.parameter for c in self.cells} - set(self.parameters)
        if unknown:
            raise ValueError(f"PPMatrix references unknown parameter(s) {sorted(unknown)}")

        self._beta: Optional[np.ndarray] = None
        self._cells_by_parameter: Dict[str, Tuple[PPCell, ...]] = {}

    @staticmethod
    def _predictor_names(element: Element, list_name: str) -> Tuple[str, ...]:
        lst = find_child(element, list_name)
        if lst is None:
            return ()
        return tuple(require_attr(p, "name") for p in iter_children(lst, "Predictor"))

    def _prepare(self) -> None:
        # parameters x categories, reference category column stays zero
        beta = np.zeros((len(self.parameters), len(self.categories)), dtype=np.float64)
        for i, param in enumerate(self.parameters):
            for j, category in enumerate(self.categories):
                beta[i, j] = self.betas.get((param, category), 0.0)
        self._beta = beta

        grouped: Dict[str, List[PPCell]] = {}
        for cell in self.cells:
            grouped.setdefault(cell.parameter, []).append(cell)
        self._cells_by_parameter = {k: tuple(v) for k, v in grouped.items()}

    # --------------------------------------------------
    def _design_row(self, record: Mapping[str, Any]) -> np.ndarray:
        row = np.ones(len(self.parameters), dtype=np.float64)
        for i, param in enumerate(self.parameters):
            for cell in self._cells_by_parameter.get(param, ()):
                if cell.predictor in self.factors:
                    hit = self.category_value(record, cell.predictor) == cell.value
                    row[i] *= 1.0 if hit else 0.0
                else:
                    row[i] *= self.numeric_value(record, cell.predictor) ** float(cell.value)
        return row

    def evaluate(self, record: Mapping[str, Any]) -> Label:
        eta = self._design_row(record) @ self._beta + self.offset

        if not self.classification:
            try:
                return float(_INVERSE_LINKS[self.link](float(eta[0]), self.link_parameter))
            except (OverflowError, ZeroDivisionError, ValueError) as e:
                raise ScoringError(record, f"link {self.link} failed: {e}") from None

        top = float(eta.max())
        exps = np.exp(eta - top)
        probs = exps / exps.sum()
        return self.categories[int(np.argmax(probs))]
