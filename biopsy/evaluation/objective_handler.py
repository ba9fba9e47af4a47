"""
Objective function handling.

The handler owns the set of objective functions for an experiment. For one
candidate it runs the target inside a scoped working directory, checks the
declared output manifest, scores the output with every objective and
reduces the per-objective results to a single scalar.

Objectives are discovered from ``*.py`` files in the configured objective
directories. Each file contributes its ObjectiveFunction subclass under the
CamelCase form of the file name (``read_mapping.py`` -> ``ReadMapping``).
An optional ``objectives.txt`` in the directory lists the files to use.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from biopsy.config.settings import ExperimentSettings
from biopsy.core.errors import ConfigurationError, EvaluationAborted
from biopsy.core.objective import EvaluationResult, ObjectiveFunction, ObjectiveResult, ObjectiveSpec
from biopsy.runtime.target import Target
from biopsy.runtime.workdir import retain_files, scoped_workdir

logger = logging.getLogger(__name__)

SUBSET_FILE = "objectives.txt"


def camelize(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def _load_objective_file(path: Path) -> Optional[ObjectiveFunction]:
    module_name = f"biopsy_objectives.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load objective module {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise ConfigurationError(f"Failed to import objective module {path}: {exc}") from exc

    for _, obj in inspect.getmembers(module, inspect.isclass):
        if issubclass(obj, ObjectiveFunction) and obj is not ObjectiveFunction and obj.__module__ == module_name:
            return obj()
    logger.warning(f"No ObjectiveFunction subclass found in {path}")
    return None


def load_objectives(
    dirs: Iterable[Union[str, Path]],
    subset: Optional[Iterable[str]] = None,
) -> Dict[str, ObjectiveFunction]:
    """
    Discover objective functions in ``dirs``.

    A subset (from ``objectives.txt`` if present, else the argument) limits
    which files are loaded; entries may be file stems or CamelCase names.
    Missing directories are skipped.
    """
    objectives: Dict[str, ObjectiveFunction] = {}
    requested: Set[str] = set()
    for d in dirs:
        directory = Path(d).expanduser()
        if not directory.is_dir():
            logger.debug(f"Objective directory {directory} does not exist; skipping")
            continue

        wanted: Optional[Set[str]] = set(subset) if subset else None
        subset_file = directory / SUBSET_FILE
        if subset_file.is_file():
            wanted = {line.strip() for line in subset_file.read_text().splitlines() if line.strip()}

        if wanted is not None:
            requested |= wanted

        for path in sorted(directory.glob("*.py")):
            if path.name.startswith("_"):
                continue
            name = camelize(path.stem)
            if wanted is not None and path.stem not in wanted and name not in wanted:
                continue
            objective = _load_objective_file(path)
            if objective is not None:
                objectives[name] = objective

    missing = {w for w in requested if w not in objectives and camelize(w) not in objectives}
    if missing:
        raise ConfigurationError(f"Objective(s) listed but not found: {sorted(missing)}")

    logger.debug(f"Loaded {len(objectives)} objective(s): {sorted(objectives)}")
    return objectives


def dimension_reduce(results: Mapping[str, ObjectiveResult]) -> float:
    """
    Weighted, normalised Euclidean distance of the results from the optimum.

    d = sqrt(sum_i w_i * ((o_i - a_i) / m_i)^2) / n

    0 at the ideal point; sqrt(n)/n when every weight-1 term saturates.
    """
    if not results:
        raise ConfigurationError("Cannot reduce an empty set of objective results")
    total = 0.0
    for value in results.values():
        total += value.normalized_term()
    return math.sqrt(total) / len(results)


class ObjectiveHandler:
    """
    Runs a target and scores its output against every objective.
    """

    def __init__(
        self,
        target: Target,
        objectives: Optional[Mapping[str, ObjectiveFunction]] = None,
        settings: Optional[ExperimentSettings] = None,
    ):
        self.target = target
        self.settings = settings or ExperimentSettings()
        if objectives is None:
            objectives = load_objectives(
                self.settings.resolve_dirs(self.settings.objectives_dir),
                self.settings.objectives_subset,
            )
        self.objectives: Dict[str, ObjectiveFunction] = dict(objectives)
        if not self.objectives:
            raise ConfigurationError(f"No objective functions available for target {target.name!r}")
        for name in self.objectives:
            try:
                self.spec_for(name)
            except ConfigurationError as exc:
                raise ConfigurationError(f"Objective {name!r}: {exc}") from exc
        self.last_workdir: Optional[Path] = None

    def spec_for(self, name: str) -> ObjectiveSpec:
        spec = self.target.objective_specs.get(name)
        if spec is None:
            spec = self.objectives[name].default_spec()
        return spec

    def run_objective(
        self,
        objective: ObjectiveFunction,
        name: str,
        output: Dict[str, Path],
        workdir: Path,
        threads: int,
    ) -> float:
        try:
            return float(objective.run(output, workdir, threads))
        except NotImplementedError as exc:
            raise ConfigurationError(
                f"Objective function {type(objective).__name__} ({name}) does not implement run()"
            ) from exc

    def check_output(self, output: Mapping[str, Path], candidate: Optional[Mapping[str, Any]] = None) -> None:
        """Abort unless every declared output file exists and is non-empty."""
        for key in self.target.output_files:
            path = output.get(key)
            if path is None or not path.is_file() or path.stat().st_size == 0:
                raise EvaluationAborted(f"output {key!r} ({path}) does not exist or is empty", candidate=candidate)

    def run_objectives(self, output: Dict[str, Path], workdir: Path) -> Dict[str, ObjectiveResult]:
        """
        Score the output with every objective concurrently.

        Results are merged only after all objectives have finished; the first
        failure (in declaration order) is re-raised after the join.
        """
        threads = self.settings.threads
        names = list(self.objectives)
        with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="objective") as pool:
            futures = {
                name: pool.submit(self.run_objective, self.objectives[name], name, output, workdir, threads)
                for name in names
            }
        # Executor exit is the join point.
        return {name: ObjectiveResult.from_spec(futures[name].result(), self.spec_for(name)) for name in names}

    def essential_files(self) -> Set[str]:
        essential: Set[str] = set()
        for objective in self.objectives.values():
            essential |= set(objective.essential_files())
        return essential

    def score(self, results: Mapping[str, ObjectiveResult]) -> EvaluationResult:
        """
        Collapse results to one higher-is-better score.

        The score is the negated reduction, so 0 is the ideal point whatever
        direction each objective's optimum lies in. Raw results are kept.
        """
        reduced = dimension_reduce(results)
        # 0.0 - x keeps a perfect score at +0.0
        return EvaluationResult(results=dict(results), reduced=reduced, score=0.0 - reduced)

    def evaluate(self, candidate: Mapping[str, Any], label: Optional[str] = None) -> EvaluationResult:
        """
        Run the target for ``candidate`` and score it.

        Raises:
            EvaluationAborted: the target did not produce its declared output.
            ConfigurationError: an objective is unusable.
        """
        with scoped_workdir() as workdir:
            self.last_workdir = workdir
            output = self.target.run(candidate, workdir)
            self.check_output(output, candidate)
            results = self.run_objectives(output, workdir)
            if self.settings.keep_intermediates:
                self._retain(workdir, label)
        return self.score(results)

    def _retain(self, workdir: Path, label: Optional[str]) -> List[Path]:
        base = Path(self.settings.retention_dir or self.settings.base_dir).expanduser()
        destination = base / self.target.name / (label or workdir.name)
        return retain_files(workdir, self.essential_files(), destination, compress=self.settings.gzip_intermediates)
