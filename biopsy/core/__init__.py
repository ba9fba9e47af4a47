from .domain import Candidate, ExperimentResult, ParameterSpace, ScoredCandidate
from .errors import BiopsyError, ConfigurationError, EvaluationAborted, StrategyExhausted
from .objective import EvaluationResult, ObjectiveFunction, ObjectiveResult, ObjectiveSpec

__all__ = [
    "BiopsyError",
    "Candidate",
    "ConfigurationError",
    "EvaluationAborted",
    "EvaluationResult",
    "ExperimentResult",
    "ObjectiveFunction",
    "ObjectiveResult",
    "ObjectiveSpec",
    "ParameterSpace",
    "ScoredCandidate",
    "StrategyExhausted",
]
