"""
biopsy CLI entry point (referenced by pyproject.toml: biopsy.cli.main:main).

Commands:
- run:     optimise a target and print the best parameters
- history: show the evaluations recorded in a ledger
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from biopsy.config.settings import load_settings
from biopsy.core.errors import ConfigurationError
from biopsy.core.id_generator import parse_experiment_id
from biopsy.experiment.engine import STRATEGIES, Experiment, create_strategy
from biopsy.storage.ledger import EvaluationLedger

logger = logging.getLogger("biopsy.cli")


def parse_assignments(pairs: Optional[List[str]]) -> Optional[Dict[str, Any]]:
    """Parse ``name=value`` pairs; values are read as YAML scalars (4 -> int)."""
    if not pairs:
        return None
    parsed: Dict[str, Any] = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or not name:
            raise ConfigurationError(f"Expected name=value, got {pair!r}")
        parsed[name.strip()] = yaml.safe_load(raw)
    return parsed


def strategy_of(experiment_id: str) -> str:
    try:
        return parse_experiment_id(experiment_id)["strategy"] or "?"
    except ValueError:
        return "?"


def cmd_run(args) -> int:
    console = Console()
    settings = load_settings(args.settings)
    overrides: Dict[str, Any] = {}
    if args.ledger:
        overrides["ledger_path"] = args.ledger
    if args.objectives_dir:
        overrides["objectives_dir"] = args.objectives_dir
    if args.seed is not None:
        overrides["seed"] = args.seed
    if overrides:
        settings = settings.model_copy(update=overrides)

    verbosity = "debug" if args.verbose else "quiet" if args.quiet else "info"
    experiment = Experiment(
        args.target,
        settings=settings,
        start=parse_assignments(args.start),
        time_limit=args.time_limit,
        max_iterations=args.max_iterations,
        verbosity=verbosity,
    )
    if args.strategy:
        experiment.strategy = create_strategy(args.strategy, experiment.target, settings)

    result = experiment.run()

    table = Table(title=f"Best result for {experiment.target.name}", box=box.SIMPLE)
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in (result.parameters or {}).items():
        table.add_row(name, str(value))
    console.print(table)
    console.print(f"Score: [bold]{result.score}[/bold]  "
                  f"({result.evaluations} evaluations, {result.elapsed:.2f}s, experiment {result.experiment_id})")
    return 0


def cmd_history(args) -> int:
    console = Console()
    ledger = EvaluationLedger(args.ledger)
    records = ledger.list_evaluations(args.experiment)
    if not records:
        logger.error("No evaluations recorded.")
        return 1

    table = Table(title=f"Evaluations in {args.ledger}", box=box.SIMPLE)
    table.add_column("Experiment", style="dim")
    table.add_column("Strategy")
    table.add_column("#", justify="right")
    table.add_column("Parameters")
    table.add_column("Score", justify="right")
    table.add_column("Time (s)", justify="right")
    for rec in records:
        params = ", ".join(f"{k}={v}" for k, v in rec.parameters.items())
        score = "[red]aborted[/red]" if rec.aborted else f"{rec.score:.6g}"
        table.add_row(rec.experiment_id, strategy_of(rec.experiment_id), str(rec.sequence_id), params, score,
                      f"{rec.wall_time:.2f}")
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="biopsy: black-box parameter optimisation")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    parser_run = subparsers.add_parser("run", help="Optimise the parameters of a target")
    parser_run.add_argument("target", help="Target name (looked up in target_dir) or path to a target YAML file")
    parser_run.add_argument("--settings", help="Path to a settings YAML file (default: ~/.biopsyrc)")
    parser_run.add_argument("--strategy", choices=STRATEGIES, help="Search strategy (default: tabu)")
    parser_run.add_argument("--time-limit", type=float, dest="time_limit", help="Wall-clock budget in seconds")
    parser_run.add_argument("--max-iterations", type=int, dest="max_iterations", help="Iteration budget")
    parser_run.add_argument("--start", nargs="+", metavar="NAME=VALUE", help="Explicit starting point")
    parser_run.add_argument("--ledger", help="SQLite file recording every evaluation")
    parser_run.add_argument("--objectives-dir", dest="objectives_dir", action="append",
                            help="Directory containing objective functions (repeatable)")
    parser_run.add_argument("--seed", type=int, help="Random seed")
    verbosity = parser_run.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log every evaluation")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings")
    parser_run.set_defaults(func=cmd_run)

    parser_history = subparsers.add_parser("history", help="Show evaluations recorded in a ledger")
    parser_history.add_argument("ledger", help="Path to the ledger SQLite file")
    parser_history.add_argument("--experiment", help="Only show this experiment ID")
    parser_history.set_defaults(func=cmd_history)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except ConfigurationError as exc:
        logger.error(str(exc))
        return 2


if __name__ == "__main__":
    sys.exit(main())
