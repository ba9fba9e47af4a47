from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from biopsy.core.domain import Candidate, ParameterSpace, ScoredCandidate

logger = logging.getLogger(__name__)


class SearchStrategy(ABC):
    """
    Abstract base class for search strategies.

    The experiment drives a strategy through:
    1. select_starting_point() (unless the user supplied one)
    2. setup(start)
    3. next(candidate, score) -> Candidate, repeated until the budget runs
       out or is_finished() reports True.

    A strategy owns all of its search state; instances are not shared
    between experiments and are not thread-safe.
    """

    name = "custom"

    def __init__(self, parameters: ParameterSpace, seed: Optional[int] = None):
        self.parameters = parameters
        self.rng = random.Random(seed)
        self.best: Optional[ScoredCandidate] = None
        self.current: Optional[ScoredCandidate] = None
        self.iterations = 0

    def knows_starting_point(self) -> bool:
        """Whether select_starting_point() needs no prior evaluation."""
        return True

    def select_starting_point(self) -> Candidate:
        return self.random_candidate()

    def random_candidate(self) -> Candidate:
        return self.parameters.random_candidate(self.rng)

    def setup(self, start: Mapping[str, Any]) -> None:
        """Accept the starting point that will be evaluated first."""
        self.current = ScoredCandidate(Candidate(start), float("-inf"))

    @abstractmethod
    def next(self, candidate: Mapping[str, Any], score: float) -> Candidate:
        """Record an evaluated candidate and propose the next one."""
        pass

    def is_finished(self) -> bool:
        """Termination signal independent of the experiment budget."""
        return False

    def update_best(self, candidate: Mapping[str, Any], score: float) -> bool:
        """
        Record ``candidate`` as current and promote it to best if strictly better.

        Returns True if the best changed.
        """
        self.current = ScoredCandidate(Candidate(candidate), score)
        if self.best is None or score > self.best.score:
            self.best = self.current
            return True
        return False
