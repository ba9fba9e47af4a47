from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Set

from biopsy.core.errors import ConfigurationError


@dataclass(frozen=True)
class ObjectiveSpec:
    """
    How an objective's raw result is placed relative to its ideal.

    optimum:   the ideal raw result
    weighting: relative importance in the reduction
    max:       normaliser; a deviation of ``max`` from the optimum counts as 1
    """

    optimum: float = 0.0
    weighting: float = 1.0
    max: float = 1.0

    def __post_init__(self) -> None:
        if self.max == 0:
            raise ConfigurationError("Objective max must be non-zero")
        if self.weighting < 0:
            raise ConfigurationError("Objective weighting must not be negative")


@dataclass(frozen=True)
class ObjectiveResult:
    """Raw result of one objective together with its spec."""

    result: float
    optimum: float
    weighting: float
    max: float

    @classmethod
    def from_spec(cls, result: float, spec: ObjectiveSpec) -> "ObjectiveResult":
        return cls(result=float(result), optimum=spec.optimum, weighting=spec.weighting, max=spec.max)

    def normalized_term(self) -> float:
        """Weighted squared normalised distance of this result from the optimum."""
        return self.weighting * ((self.optimum - self.result) / self.max) ** 2


class ObjectiveFunction:
    """
    Base class for objective function plugins.

    Subclasses implement ``run`` to score the files a target produced.
    Class attributes ``optimum``, ``weighting`` and ``max`` are used when the
    target definition does not declare a spec for the objective.
    """

    optimum: float = 0.0
    weighting: float = 1.0
    max: float = 1.0

    def run(self, output: Dict[str, Path], workdir: Path, threads: int = 1) -> float:
        """
        Score the target output.

        Args:
            output: Mapping of output key -> produced file path.
            workdir: Scratch directory for intermediate files.
            threads: Number of threads the objective may use.

        Returns:
            The raw numeric result.
        """
        raise NotImplementedError

    def essential_files(self) -> Set[str]:
        """Names of files in the workdir worth keeping after scoring."""
        return set()

    def default_spec(self) -> ObjectiveSpec:
        return ObjectiveSpec(optimum=self.optimum, weighting=self.weighting, max=self.max)


@dataclass
class EvaluationResult:
    """Everything produced by scoring one candidate."""

    results: Dict[str, ObjectiveResult]
    reduced: float
    score: float
