from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from biopsy.config.targets import TargetConfig
from biopsy.core.domain import Candidate, ParameterSpace
from biopsy.core.errors import EvaluationAborted
from biopsy.core.objective import ObjectiveSpec

logger = logging.getLogger(__name__)


class Target(ABC):
    """
    The external computation being tuned.

    ``run`` is blocking: it returns once the computation has finished and
    hands back the mapping of output key -> produced file.
    """

    name: str
    parameters: ParameterSpace
    output_files: Dict[str, str]
    objective_specs: Dict[str, ObjectiveSpec]

    @abstractmethod
    def run(self, candidate: Mapping[str, Any], workdir: Path) -> Dict[str, Path]:
        pass

    def output_paths(self, workdir: Path) -> Dict[str, Path]:
        return {key: workdir / filename for key, filename in self.output_files.items()}

    def count_parameter_permutations(self) -> int:
        return self.parameters.count_permutations()


class CommandTarget(Target):
    """
    Target executed as a subprocess in the evaluation working directory.

    The command line is ``command + flags`` followed by one formatted
    argument per parameter, in declaration order. stdout/stderr are captured
    to ``stdout.log``/``stderr.log`` for diagnostics only.
    """

    def __init__(self, config: TargetConfig):
        self.config = config
        self.name = config.name
        self.parameters = config.parameter_space()
        self.output_files = dict(config.output)
        self.objective_specs = config.objective_specs()
        self.timeout = config.timeout

    def build_command(self, candidate: Mapping[str, Any]) -> List[str]:
        cmd = list(self.config.command) + list(self.config.flags)
        for name in self.parameters.names:
            rendered = self.config.parameter_format.format(name=name, value=candidate[name])
            cmd.extend(rendered.split())
        return cmd

    def run(self, candidate: Mapping[str, Any], workdir: Path) -> Dict[str, Path]:
        cmd = self.build_command(candidate)
        stdout_path = workdir / "stdout.log"
        stderr_path = workdir / "stderr.log"

        logger.debug(f"Executing command in {workdir}: {' '.join(cmd)}")
        with open(stdout_path, "w") as stdout_file, open(stderr_path, "w") as stderr_file:
            try:
                completed = subprocess.run(
                    cmd,
                    cwd=str(workdir),
                    stdout=stdout_file,
                    stderr=stderr_file,
                    timeout=self.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise EvaluationAborted(
                    f"target {self.name!r} timed out after {self.timeout}s", candidate=candidate
                ) from exc
            except OSError as exc:
                raise EvaluationAborted(
                    f"target {self.name!r} could not be started: {exc}", candidate=candidate
                ) from exc

        if completed.returncode != 0:
            logger.warning(f"Target {self.name!r} exited with code {completed.returncode} (see {stderr_path})")

        return self.output_paths(workdir)


class CallableTarget(Target):
    """
    Target implemented as a Python callable ``fn(candidate, workdir)``.

    The callable is responsible for writing the declared output files into
    the working directory.
    """

    def __init__(
        self,
        name: str,
        parameters: ParameterSpace,
        fn: Callable[[Candidate, Path], Any],
        output: Optional[Dict[str, str]] = None,
        objective_specs: Optional[Dict[str, ObjectiveSpec]] = None,
    ):
        parameters.validate()
        self.name = name
        self.parameters = parameters
        self.fn = fn
        self.output_files = dict(output or {})
        self.objective_specs = dict(objective_specs or {})

    def run(self, candidate: Mapping[str, Any], workdir: Path) -> Dict[str, Path]:
        self.fn(Candidate(candidate), workdir)
        return self.output_paths(workdir)


def target_from_config(config: TargetConfig) -> Target:
    return CommandTarget(config)
