"""
Target definitions.

A target definition describes the external program being tuned, the
parameter space it accepts, the files it must produce and how each
objective's result is normalised:

  name: soap_dt
  command: [SOAPdenovo-Trans-127mer, all]
  flags: [-s, soapdt.config, -F]
  parameter_format: "-{name} {value}"
  timeout: 3600
  parameters:
    K: {from: 21, to: 81, step: 4}
    d: [0, 1, 2, 3]
    M: 1                       # constant
  output:
    contigs: out.contig
  objectives:
    ReadMapping: {optimum: 1.0, weighting: 1.0, max: 1.0}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from biopsy.core.domain import ParameterSpace
from biopsy.core.errors import ConfigurationError
from biopsy.core.objective import ObjectiveSpec


class ObjectiveSpecConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    optimum: float
    weighting: float = 1.0
    max: float

    @model_validator(mode="after")
    def _validate_max(self) -> "ObjectiveSpecConfig":
        if self.max == 0:
            raise ValueError("max must be non-zero")
        if self.weighting < 0:
            raise ValueError("weighting must not be negative")
        return self

    def to_spec(self) -> ObjectiveSpec:
        return ObjectiveSpec(optimum=self.optimum, weighting=self.weighting, max=self.max)


class RangeConfig(BaseModel):
    """Inclusive integer range: ``{from: 1, to: 5, step: 1}``."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    start: int = Field(alias="from")
    stop: int = Field(alias="to")
    step: int = 1

    @model_validator(mode="after")
    def _validate_step(self) -> "RangeConfig":
        if self.step == 0:
            raise ValueError("step must be non-zero")
        return self

    def values(self) -> List[int]:
        end = self.stop + (1 if self.step > 0 else -1)
        return list(range(self.start, end, self.step))


class TargetConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    command: List[str] = Field(default_factory=list)
    flags: List[str] = Field(default_factory=list)
    parameter_format: str = "--{name}={value}"
    parameters: Dict[str, Any]
    output: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None
    objectives: Dict[str, ObjectiveSpecConfig] = Field(default_factory=dict)

    @field_validator("command", mode="before")
    @classmethod
    def _coerce_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value

    @field_validator("parameters", mode="after")
    @classmethod
    def _normalize_parameters(cls, value: Dict[str, Any]) -> Dict[str, List[Any]]:
        normalized: Dict[str, List[Any]] = {}
        for name, domain in value.items():
            if isinstance(domain, dict):
                normalized[str(name)] = RangeConfig.model_validate(domain).values()
            elif isinstance(domain, (list, tuple)):
                normalized[str(name)] = list(domain)
            else:
                normalized[str(name)] = [domain]
        return normalized

    @field_validator("parameter_format")
    @classmethod
    def _validate_format(cls, value: str) -> str:
        if "{value}" not in value:
            raise ValueError("parameter_format must contain '{value}'")
        return value

    def parameter_space(self) -> ParameterSpace:
        space = ParameterSpace(self.parameters)
        space.validate()
        return space

    def objective_specs(self) -> Dict[str, ObjectiveSpec]:
        return {name: cfg.to_spec() for name, cfg in self.objectives.items()}


def parse_target_dict(data: Any, *, path: Union[str, Path] = "<target>") -> TargetConfig:
    """
    Parse a loaded YAML object into a TargetConfig.

    Raises:
        ConfigurationError on any shape/validation error, including a
        parameter with an empty domain.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: target definition must be a YAML mapping")
    try:
        target = TargetConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"{path}: invalid target definition: {exc}") from exc

    target.parameter_space()
    return target


def load_target(path: Union[str, Path]) -> TargetConfig:
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f"{p}: target definition not found")
    try:
        data = yaml.safe_load(p.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{p}: failed to parse YAML: {exc}") from exc
    return parse_target_dict(data, path=p)
