from __future__ import annotations

from .engine import Experiment, create_strategy, run_experiment, set_verbosity

__all__ = ["Experiment", "create_strategy", "run_experiment", "set_verbosity"]
