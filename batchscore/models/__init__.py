"""
ScoringModel variants, one per supported model family.

Construct them through batchscore.classifier, never directly from
pipeline code.
"""
from .base import ScoringModel
from .clustering import ClusteringModel
from .glm import GeneralizedRegressionModel
from .mining import MiningModel
from .regression import RegressionModel
from .tree import TreeModel

__all__ = [
    "ScoringModel",
    "ClusteringModel",
    "GeneralizedRegressionModel",
    "MiningModel",
    "RegressionModel",
    "TreeModel",
]
