from __future__ import annotations

from .base import SearchStrategy
from .spea2 import EvolutionaryStrategy
from .sweep import ParameterSweeper, enumerate_combinations
from .tabu import TabuSearch, TabuState

__all__ = [
    "EvolutionaryStrategy",
    "ParameterSweeper",
    "SearchStrategy",
    "TabuSearch",
    "TabuState",
    "enumerate_combinations",
]
