from __future__ import annotations

import dataclasses
import logging
import math
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from biopsy.config.settings import ExperimentSettings, locate_config
from biopsy.config.targets import TargetConfig, load_target
from biopsy.core.domain import Candidate, ExperimentResult, ScoredCandidate
from biopsy.core.errors import ConfigurationError, EvaluationAborted, StrategyExhausted
from biopsy.core.id_generator import generate_experiment_id
from biopsy.core.objective import ObjectiveFunction
from biopsy.evaluation.objective_handler import ObjectiveHandler
from biopsy.optimisers.base import SearchStrategy
from biopsy.optimisers.spea2 import EvolutionaryStrategy
from biopsy.optimisers.sweep import ParameterSweeper
from biopsy.optimisers.tabu import TabuSearch
from biopsy.runtime.target import Target, target_from_config
from biopsy.storage.ledger import EvaluationLedger

logger = logging.getLogger(__name__)

VERBOSITY_LEVELS: Dict[str, int] = {
    "silent": logging.CRITICAL + 1,
    "quiet": logging.WARNING,
    "info": logging.INFO,
    "loud": logging.INFO,
    "debug": logging.DEBUG,
}

STRATEGIES = ("tabu", "spea2", "sweep")


def set_verbosity(verbosity: Union[str, int]) -> int:
    """Set the level of the ``biopsy`` logger from a name or logging level."""
    if isinstance(verbosity, int):
        level = verbosity
    else:
        try:
            level = VERBOSITY_LEVELS[verbosity.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown verbosity {verbosity!r}; expected one of {sorted(VERBOSITY_LEVELS)}"
            ) from None
    logging.getLogger("biopsy").setLevel(level)
    return level


def create_strategy(name: str, target: Target, settings: ExperimentSettings) -> SearchStrategy:
    """Instantiate a strategy by name, configured from ``settings``."""
    if name == "tabu":
        return TabuSearch(
            target.parameters,
            tenure=settings.tabu_tenure,
            stagnation_limit=settings.tabu_stagnation_limit,
            seed=settings.seed,
        )
    if name == "spea2":
        return EvolutionaryStrategy(
            target.parameters,
            population_size=settings.population_size,
            archive_size=settings.archive_size,
            probability_of_cross=settings.probability_of_cross,
            mutation_probability=settings.mutation_probability,
            convergence_generations=settings.convergence_generations,
            seed=settings.seed,
        )
    if name == "sweep":
        return ParameterSweeper(target.parameters, seed=settings.seed)
    raise ConfigurationError(f"Unknown strategy {name!r}; expected one of {STRATEGIES}")


class Experiment:
    """
    Drives one bounded optimisation run against a target.

    The loop:
    1. starting point (explicit, or strategy.select_starting_point())
    2. evaluate -> update best
    3. while within budget and not strategy.is_finished():
         strategy.next(candidate, score) -> evaluate -> update best

    The time limit is checked once per completed iteration; a running
    evaluation is never interrupted.
    """

    def __init__(
        self,
        target: Union[str, Path, TargetConfig, Target],
        *,
        settings: Optional[ExperimentSettings] = None,
        start: Optional[Mapping[str, Any]] = None,
        strategy: Optional[SearchStrategy] = None,
        time_limit: Optional[float] = None,
        max_iterations: Optional[int] = None,
        verbosity: Union[str, int] = "info",
        objectives: Optional[Mapping[str, ObjectiveFunction]] = None,
        ledger: Optional[EvaluationLedger] = None,
        handler: Optional[ObjectiveHandler] = None,
    ):
        self.settings = settings or ExperimentSettings()
        set_verbosity(verbosity)

        self.target = self._resolve_target(target)
        self.parameters = self.target.parameters
        self.parameters.validate()

        self.handler = handler or ObjectiveHandler(self.target, objectives, self.settings)
        self.strategy = strategy if strategy is not None else self.select_strategy()
        self.start: Optional[Candidate] = self.parameters.check_candidate(start) if start is not None else None

        if time_limit is not None and time_limit < 0:
            raise ConfigurationError("time_limit must not be negative")
        self.time_limit = time_limit
        self.max_iterations = max_iterations

        if ledger is None and self.settings.ledger_path:
            ledger = EvaluationLedger(Path(self.settings.ledger_path).expanduser())
        self.ledger = ledger

        self.experiment_id: Optional[str] = None
        self.best: Optional[ScoredCandidate] = None
        self.scores: Dict[Candidate, float] = {}
        self.history: List[ScoredCandidate] = []
        self.iterations = 0
        self.evaluations = 0

    def _resolve_target(self, target: Union[str, Path, TargetConfig, Target]) -> Target:
        if isinstance(target, Target):
            return target
        if isinstance(target, TargetConfig):
            return target_from_config(target)

        path = Path(target).expanduser()
        if path.is_file():
            return target_from_config(load_target(path))

        located = locate_config(self.settings.resolve_dirs(self.settings.target_dir), str(target))
        if located is None:
            raise ConfigurationError(f"Target {str(target)!r} not found in {self.settings.target_dir}")
        return target_from_config(load_target(located))

    def select_strategy(self) -> SearchStrategy:
        """Tabu search, unless the space is small enough to sweep (``sweep_cutoff``)."""
        cutoff = self.settings.sweep_cutoff
        if cutoff is not None and self.target.count_parameter_permutations() < cutoff:
            logger.info(f"Parameter space smaller than sweep cutoff ({cutoff}); sweeping exhaustively")
            return create_strategy("sweep", self.target, self.settings)
        return create_strategy("tabu", self.target, self.settings)

    def select_starting_point(self) -> Candidate:
        if self.start is None:
            if self.strategy.knows_starting_point():
                self.start = Candidate(self.strategy.select_starting_point())
            else:
                self.start = self.parameters.random_candidate(self.strategy.rng)
        return self.start

    def _budget_exhausted(self, started: float) -> bool:
        if self.time_limit is not None and time.monotonic() - started >= self.time_limit:
            logger.info(f"Time limit of {self.time_limit}s reached.")
            return True
        if self.max_iterations is not None and self.iterations >= self.max_iterations:
            logger.info(f"Iteration limit of {self.max_iterations} reached.")
            return True
        return False

    def run(self) -> ExperimentResult:
        """Execute the experiment and return the best candidate observed."""
        self.experiment_id = generate_experiment_id(self.target.name, self.strategy.name, self.settings.seed)
        logger.info(f"Starting experiment {self.experiment_id} on target {self.target.name!r} "
                    f"with {type(self.strategy).__name__}.")
        started = time.monotonic()

        try:
            current = self.select_starting_point()
        except StrategyExhausted as exc:
            logger.warning(f"Nothing to evaluate: {exc}")
            return self._result(started)

        self.strategy.setup(current)
        score = self.evaluate(current)

        while not self._budget_exhausted(started):
            if self.strategy.is_finished():
                logger.info("Strategy reports convergence.")
                break

            current = self.strategy.next(current, score)
            self.iterations += 1
            score = self.evaluate(current)

        result = self._result(started)
        logger.info(f"Experiment finished after {result.evaluations} evaluation(s) in {result.elapsed:.2f}s; "
                    f"best score {result.score} at {result.parameters}")
        return result

    def evaluate(self, candidate: Mapping[str, Any]) -> float:
        """
        Score ``candidate``, updating the best-so-far.

        A candidate already scored in this experiment is not re-run.
        An aborted evaluation scores ``-inf``.
        """
        candidate = Candidate(candidate)
        if candidate in self.scores:
            logger.debug(f"Reusing score for {candidate.to_dict()}")
            return self.scores[candidate]

        self.evaluations += 1
        sequence_id = self.evaluations
        t0 = time.monotonic()
        results: Optional[Dict[str, Any]] = None
        try:
            evaluation = self.handler.evaluate(candidate, label=f"{self.experiment_id}_{sequence_id}")
            score = evaluation.score
            results = {name: dataclasses.asdict(r) for name, r in evaluation.results.items()}
        except EvaluationAborted as exc:
            logger.warning(f"Evaluation {sequence_id} of {candidate.to_dict()} aborted: {exc.reason}")
            score = float("-inf")
        wall_time = time.monotonic() - t0

        logger.debug(f"Evaluation {sequence_id}: {candidate.to_dict()} -> {score} ({wall_time:.3f}s)")
        self.scores[candidate] = score
        self.history.append(ScoredCandidate(candidate, score, results))
        if self.ledger is not None:
            self.ledger.record(
                self.experiment_id,
                self.target.name,
                sequence_id,
                candidate.to_dict(),
                score,
                wall_time,
                results=results,
            )

        if self.best is None or score > self.best.score:
            self.best = ScoredCandidate(candidate, score, results)
            if math.isfinite(score):
                logger.info(f"New best score {score} at {candidate.to_dict()}")
        return score

    def _result(self, started: float) -> ExperimentResult:
        return ExperimentResult(
            parameters=self.best.candidate.to_dict() if self.best else None,
            score=self.best.score if self.best else None,
            experiment_id=self.experiment_id,
            iterations=self.iterations,
            evaluations=self.evaluations,
            elapsed=time.monotonic() - started,
            history=list(self.history),
        )


def run_experiment(target: Union[str, Path, TargetConfig, Target], **options: Any) -> ExperimentResult:
    """Functional form: build an Experiment from ``options`` and run it."""
    return Experiment(target, **options).run()
