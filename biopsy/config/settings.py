"""
Experiment-wide settings.

Settings are a plain validated model passed explicitly to the Experiment;
there is no process-wide settings object. A YAML file (``~/.biopsyrc`` by
default) may override any field:

  target_dir: [targets, ~/biopsy/targets]
  objectives_dir: [objectives]
  objectives_subset: [fixed_objective]
  sweep_cutoff: 100
  threads: 4
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from biopsy.core.errors import ConfigurationError

DEFAULT_CONFIG_FILE = Path("~/.biopsyrc")


class ExperimentSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_dir: str = "."
    target_dir: List[str] = Field(default_factory=lambda: ["targets"])
    objectives_dir: List[str] = Field(default_factory=lambda: ["objectives"])
    objectives_subset: Optional[List[str]] = None

    # Spaces with fewer permutations than this are swept exhaustively when
    # no strategy is given. None disables the shortcut.
    sweep_cutoff: Optional[int] = None

    threads: int = 1
    keep_intermediates: bool = False
    gzip_intermediates: bool = False
    retention_dir: Optional[str] = None
    ledger_path: Optional[str] = None

    # Tabu search
    tabu_tenure: int = 5
    tabu_stagnation_limit: int = 5

    # Evolutionary strategy
    population_size: int = 20
    archive_size: int = 5
    probability_of_cross: float = 0.94
    mutation_probability: float = 0.05
    convergence_generations: int = 3

    seed: Optional[int] = None

    @field_validator("target_dir", "objectives_dir", mode="before")
    @classmethod
    def _coerce_dir_list(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)):
            return [str(value)]
        return value

    @model_validator(mode="after")
    def _validate_ranges(self) -> "ExperimentSettings":
        for name in ("threads", "tabu_tenure", "tabu_stagnation_limit", "convergence_generations"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be a positive integer")
        if self.population_size < 2:
            raise ValueError("population_size must be at least 2")
        if self.archive_size < 1:
            raise ValueError("archive_size must be a positive integer")
        for name in ("probability_of_cross", "mutation_probability"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be within [0, 1]")
        return self

    def resolve_dirs(self, dirs: Iterable[str]) -> List[Path]:
        """Expand and anchor configured directories on ``base_dir``."""
        base = Path(self.base_dir).expanduser()
        return [base / Path(d).expanduser() for d in dirs]


def parse_settings_dict(data: Any, *, path: Union[str, Path] = "<settings>") -> ExperimentSettings:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: settings must be a YAML mapping")
    try:
        return ExperimentSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"{path}: invalid settings: {exc}") from exc


def load_settings(path: Optional[Union[str, Path]] = None) -> ExperimentSettings:
    """
    Load settings from YAML, merged over the defaults.

    With no path the default ``~/.biopsyrc`` is tried and silently skipped
    if absent. An explicit path that does not exist is an error.
    """
    if path is None:
        p = DEFAULT_CONFIG_FILE.expanduser()
        if not p.is_file():
            return ExperimentSettings()
    else:
        p = Path(path).expanduser()
        if not p.is_file():
            raise ConfigurationError(f"{p}: settings file not found")

    try:
        data = yaml.safe_load(p.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{p}: failed to parse YAML: {exc}") from exc

    return parse_settings_dict(data, path=p)


def save_settings(settings: ExperimentSettings, path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> Path:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(settings.model_dump(), sort_keys=False))
    return p


def locate_config(dirs: Iterable[Union[str, Path]], name: str) -> Optional[Path]:
    """
    Find the first YAML file whose stem matches ``name`` (case-insensitive).

    Directories are searched in order; missing directories are skipped.
    """
    wanted = name.lower()
    for d in dirs:
        directory = Path(d).expanduser()
        if not directory.is_dir():
            continue
        for candidate in sorted(directory.iterdir()):
            if candidate.suffix in (".yml", ".yaml") and candidate.stem.lower() == wanted:
                return candidate.resolve()
    return None
