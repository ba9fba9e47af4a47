import sys
import textwrap
import time
from pathlib import Path

import pytest

from biopsy.config.targets import parse_target_dict
from biopsy.core.domain import ParameterSpace
from biopsy.core.objective import ObjectiveFunction, ObjectiveSpec
from biopsy.runtime.target import CallableTarget, CommandTarget
from biopsy.storage.ledger import EvaluationLedger


def synthetic_score(candidate) -> int:
    """-(|a-4| + |b-4| + |c-4|): 0 at {a: 4, b: 4, c: 4}, -9 at worst."""
    return -sum(abs(candidate[name] - 4) for name in ("a", "b", "c"))


class ScoreFileObjective(ObjectiveFunction):
    """Reads the score written by the synthetic target."""

    optimum = 0.0
    max = 12.0

    def __init__(self):
        self.calls = 0

    def run(self, output, workdir, threads=1):
        self.calls += 1
        return float(output["score"].read_text().strip())

    def essential_files(self):
        return {"score.txt"}


def write_score(candidate, workdir: Path) -> None:
    (workdir / "score.txt").write_text(str(synthetic_score(candidate)))


@pytest.fixture
def space():
    return ParameterSpace({"a": range(1, 6), "b": range(1, 6), "c": range(1, 6)})


@pytest.fixture
def objective():
    return ScoreFileObjective()


@pytest.fixture
def objectives(objective):
    return {"ScoreFile": objective}


@pytest.fixture
def synthetic_target(space):
    """In-process synthetic target writing score.txt."""
    return CallableTarget(
        "target_test",
        space,
        write_score,
        output={"score": "score.txt"},
        objective_specs={"ScoreFile": ObjectiveSpec(optimum=0.0, weighting=1.0, max=12.0)},
    )


@pytest.fixture
def slow_target(space):
    """Synthetic target taking 50ms per evaluation."""

    def slow(candidate, workdir):
        time.sleep(0.05)
        write_score(candidate, workdir)

    return CallableTarget("slow_target", space, slow, output={"score": "score.txt"})


@pytest.fixture
def target_script(tmp_path):
    script = tmp_path / "synthetic_target.py"
    script.write_text(
        textwrap.dedent(
            """
            import argparse

            parser = argparse.ArgumentParser()
            for name in ("a", "b", "c"):
                parser.add_argument(f"--{name}", type=int, required=True)
            args = parser.parse_args()
            score = -(abs(args.a - 4) + abs(args.b - 4) + abs(args.c - 4))
            with open("score.txt", "w") as fh:
                fh.write(str(score))
            """
        )
    )
    return script


@pytest.fixture
def target_config_dict(target_script):
    return {
        "name": "target_test",
        "command": [sys.executable, str(target_script)],
        "parameters": {
            "a": {"from": 1, "to": 5},
            "b": {"from": 1, "to": 5},
            "c": {"from": 1, "to": 5},
        },
        "output": {"score": "score.txt"},
        "objectives": {"ScoreFile": {"optimum": 0, "weighting": 1, "max": 12}},
    }


@pytest.fixture
def command_target(target_config_dict, tmp_path):
    return CommandTarget(parse_target_dict(target_config_dict, path=tmp_path / "target_test.yml"))


@pytest.fixture
def ledger(tmp_path):
    return EvaluationLedger(tmp_path / "ledger.sqlite")
