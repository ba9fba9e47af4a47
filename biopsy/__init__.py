__version__ = "0.3.0"

from biopsy.core.domain import Candidate, ExperimentResult, ParameterSpace
from biopsy.core.errors import ConfigurationError, EvaluationAborted, StrategyExhausted
from biopsy.core.objective import ObjectiveFunction
from biopsy.experiment.engine import Experiment, run_experiment
from biopsy.optimisers import EvolutionaryStrategy, ParameterSweeper, SearchStrategy, TabuSearch

__all__ = [
    "Candidate",
    "ConfigurationError",
    "EvaluationAborted",
    "EvolutionaryStrategy",
    "Experiment",
    "ExperimentResult",
    "ObjectiveFunction",
    "ParameterSpace",
    "ParameterSweeper",
    "SearchStrategy",
    "StrategyExhausted",
    "TabuSearch",
    "run_experiment",
]
