from __future__ import annotations

import itertools
import logging
from typing import Any, Iterator, Mapping, Optional, Sequence, Tuple

from biopsy.core.domain import Candidate, ParameterSpace
from biopsy.core.errors import StrategyExhausted
from biopsy.optimisers.base import SearchStrategy

logger = logging.getLogger(__name__)


def enumerate_combinations(dimensions: Mapping[str, Sequence[Any]]) -> Iterator[Tuple[int, Candidate]]:
    """
    Yield ``(sequence_id, candidate)`` for the Cartesian product of ``dimensions``.

    The last-declared parameter varies fastest, as in nested loops over the
    mapping's key order. Sequence ids start at 1. A mapping with no
    parameters, or with any empty domain, yields nothing.
    """
    if isinstance(dimensions, ParameterSpace):
        dimensions = dimensions.dimensions
    if not dimensions:
        return
    keys = list(dimensions.keys())
    for sequence_id, combination in enumerate(itertools.product(*dimensions.values()), start=1):
        yield sequence_id, Candidate(dict(zip(keys, combination)))


class ParameterSweeper(SearchStrategy):
    """
    Exhaustive sweep: proposes every candidate in the space exactly once.

    Finished once the final combination has been handed out.
    """

    name = "sweep"

    def __init__(self, parameters: ParameterSpace, seed: Optional[int] = None):
        super().__init__(parameters, seed=seed)
        self.total = 0 if parameters.has_empty_domain() else parameters.count_permutations()
        self._combinations = enumerate_combinations(parameters)
        self.issued = 0
        self.sequence_id = 0

    def _take(self) -> Candidate:
        try:
            self.sequence_id, candidate = next(self._combinations)
        except StopIteration:
            raise StrategyExhausted("parameter sweep has no combinations left") from None
        self.issued += 1
        return candidate

    def select_starting_point(self) -> Candidate:
        if self.issued:
            raise StrategyExhausted("sweep starting point already issued")
        return self._take()

    def setup(self, start: Mapping[str, Any]) -> None:
        super().setup(start)
        logger.info(f"Sweeping {self.total} parameter combination(s)")

    def next(self, candidate: Mapping[str, Any], score: float) -> Candidate:
        self.iterations += 1
        self.update_best(candidate, score)
        if self.is_finished():
            return self.best.candidate
        return self._take()

    def remaining(self) -> int:
        return self.total - self.issued

    def is_finished(self) -> bool:
        return self.remaining() <= 0
