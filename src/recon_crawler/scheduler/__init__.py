"""Priority frontier, weights and adaptive learning."""

from recon_crawler.scheduler.frontier import Frontier, FrontierClosed, FrontierEntry
from recon_crawler.scheduler.learner import AdaptiveLearner, LearnerStats, WeightAdjustment, evaluate_value
from recon_crawler.scheduler.weights import WeightVector, params_bonus, path_value, score


__all__ = [
    "AdaptiveLearner",
    "Frontier",
    "FrontierClosed",
    "FrontierEntry",
    "LearnerStats",
    "WeightAdjustment",
    "WeightVector",
    "evaluate_value",
    "params_bonus",
    "path_value",
    "score",
]
