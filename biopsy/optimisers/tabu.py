"""
Tabu search over a discrete parameter space.

The search keeps a *centre* candidate and explores its neighbourhood: every
candidate that differs from the centre in exactly one parameter, by one
position in that parameter's domain. Unscored neighbours are proposed one at
a time. Once the whole neighbourhood has a score the search moves to the
best admissible neighbour and the old centre becomes tabu for ``tenure``
moves. A tabu neighbour is still admissible if its score beats the best
score seen before the neighbourhood was opened (aspiration).

Former centres never satisfy aspiration: their scores were already known
when the neighbourhood was opened. It applies to candidates marked with
``forbid`` before they were scored, e.g. regions a previous experiment
found unpromising; if one of them turns out better than anything seen so
far, the search still moves there.

The search converges when no admissible neighbour exists or when the best
score has not improved for ``stagnation_limit`` consecutive moves. After
that ``next`` keeps returning the best candidate found.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional

from biopsy.core.domain import Candidate, ParameterSpace
from biopsy.core.errors import StrategyExhausted
from biopsy.optimisers.base import SearchStrategy

logger = logging.getLogger(__name__)


class TabuState(str, Enum):
    IDLE = "IDLE"
    SEEDED = "SEEDED"
    EXPLORING = "EXPLORING"
    CONVERGED = "CONVERGED"


class TabuSearch(SearchStrategy):
    name = "tabu"

    def __init__(
        self,
        parameters: ParameterSpace,
        tenure: int = 5,
        stagnation_limit: int = 5,
        seed: Optional[int] = None,
    ):
        super().__init__(parameters, seed=seed)
        self.tenure = tenure
        self.stagnation_limit = stagnation_limit
        self.state = TabuState.IDLE

        self.centre: Optional[Candidate] = None
        self.neighbourhood: List[Candidate] = []
        self.pending: Deque[Candidate] = deque()
        # candidate -> move number at which it stops being tabu
        self.tabu: Dict[Candidate, int] = {}
        self.scores: Dict[Candidate, float] = {}
        self.moves = 0
        self.moves_since_best = 0
        self._best_at_open = float("-inf")

    def setup(self, start: Mapping[str, Any]) -> None:
        super().setup(start)
        self.centre = Candidate(start)
        self.state = TabuState.SEEDED

    def is_finished(self) -> bool:
        return self.state == TabuState.CONVERGED

    def is_tabu(self, candidate: Candidate) -> bool:
        return self.tabu.get(candidate, -1) > self.moves

    def forbid(self, candidate: Mapping[str, Any], tenure: Optional[int] = None) -> None:
        """Make ``candidate`` tabu for ``tenure`` moves (default: the search tenure)."""
        candidate = self.parameters.check_candidate(candidate)
        self.tabu[candidate] = self.moves + (self.tenure if tenure is None else tenure)

    def neighbours(self, candidate: Candidate) -> List[Candidate]:
        """All candidates one domain step away from ``candidate`` in one parameter."""
        result: List[Candidate] = []
        for name, values in self.parameters.items():
            index = values.index(candidate[name])
            for step in (-1, 1):
                j = index + step
                if 0 <= j < len(values):
                    result.append(candidate.replace(name, values[j]))
        return result

    def next(self, candidate: Mapping[str, Any], score: float) -> Candidate:
        candidate = Candidate(candidate)
        self.iterations += 1
        self.scores[candidate] = score
        if self.update_best(candidate, score):
            logger.debug(f"Tabu search: new best {score} at {candidate.to_dict()}")

        if self.state == TabuState.IDLE:
            self.setup(candidate)
        if self.state == TabuState.SEEDED:
            self.state = TabuState.EXPLORING
            self._open_neighbourhood()
        if self.state == TabuState.CONVERGED:
            return self.best.candidate

        return self._propose()

    def _open_neighbourhood(self) -> None:
        self.neighbourhood = self.neighbours(self.centre)
        self.pending = deque(n for n in self.neighbourhood if n not in self.scores)
        self._best_at_open = self.best.score if self.best else float("-inf")

    def _propose(self) -> Candidate:
        while self.state == TabuState.EXPLORING:
            while self.pending:
                proposal = self.pending.popleft()
                if proposal not in self.scores:
                    return proposal
            try:
                self._move()
            except StrategyExhausted as exc:
                logger.info(f"Tabu search converged: {exc}")
                self.state = TabuState.CONVERGED
        return self.best.candidate

    def _admissible(self, candidate: Candidate) -> bool:
        if not self.is_tabu(candidate):
            return True
        return self.scores[candidate] > self._best_at_open

    def _move(self) -> None:
        scored = [n for n in self.neighbourhood if n in self.scores]
        admissible = [n for n in scored if self._admissible(n)]
        if not admissible:
            raise StrategyExhausted("no admissible neighbour")

        chosen = max(admissible, key=lambda n: self.scores[n])
        self.tabu[self.centre] = self.moves + 1 + self.tenure
        self.centre = chosen
        self.moves += 1
        self.tabu = {c: expiry for c, expiry in self.tabu.items() if expiry > self.moves}

        if self.best.score > self._best_at_open:
            self.moves_since_best = 0
        else:
            self.moves_since_best += 1
        if self.moves_since_best >= self.stagnation_limit:
            raise StrategyExhausted(f"no improvement for {self.moves_since_best} moves")

        self._open_neighbourhood()
