from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from biopsy.core.errors import ConfigurationError


class Candidate(Mapping[str, Any]):
    """
    One concrete assignment of values to all tunable parameters.

    Immutable and hashable; equality is structural, so a Candidate compares
    equal to another Candidate (or plain dict) holding the same pairs.
    """

    __slots__ = ("_params", "_hash")

    def __init__(self, params: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        data = dict(params or {})
        data.update(kwargs)
        self._params: Dict[str, Any] = data
        self._hash: Optional[int] = None

    def __getitem__(self, key: str) -> Any:
        return self._params[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._params.items()))
        return self._hash

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return self._params == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Candidate({self._params!r})"

    def replace(self, name: str, value: Any) -> "Candidate":
        """Return a copy with a single parameter changed."""
        data = dict(self._params)
        data[name] = value
        return Candidate(data)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._params)


class ParameterSpace:
    """
    Mapping of parameter name -> ordered, finite tuple of allowed values.

    Constant parameters are held as singleton domains. Declaration order is
    preserved and defines enumeration order for sweeps and command lines.
    """

    def __init__(self, dimensions: Mapping[str, Sequence[Any]]):
        self._dimensions: Dict[str, Tuple[Any, ...]] = {}
        for name, values in dimensions.items():
            if isinstance(values, (str, bytes)) or not isinstance(values, (Sequence, range)):
                values = [values]
            self._dimensions[str(name)] = tuple(values)

    @property
    def names(self) -> List[str]:
        return list(self._dimensions.keys())

    @property
    def dimensions(self) -> Dict[str, Tuple[Any, ...]]:
        return dict(self._dimensions)

    def domain(self, name: str) -> Tuple[Any, ...]:
        return self._dimensions[name]

    def items(self):
        return self._dimensions.items()

    def __len__(self) -> int:
        return len(self._dimensions)

    def __contains__(self, name: object) -> bool:
        return name in self._dimensions

    def __repr__(self) -> str:
        return f"ParameterSpace({self._dimensions!r})"

    def has_empty_domain(self) -> bool:
        return any(len(values) == 0 for values in self._dimensions.values())

    def count_permutations(self) -> int:
        """Number of distinct candidates in the space."""
        if not self._dimensions:
            return 0
        return math.prod(len(values) for values in self._dimensions.values())

    def validate(self) -> None:
        """Raise ConfigurationError if the space cannot be searched."""
        if not self._dimensions:
            raise ConfigurationError("Parameter space declares no parameters.")
        empty = [name for name, values in self._dimensions.items() if not values]
        if empty:
            raise ConfigurationError(f"Parameter(s) with empty domain: {', '.join(empty)}")

    def contains(self, candidate: Mapping[str, Any]) -> bool:
        """True if the candidate assigns every parameter a value from its domain."""
        if set(candidate.keys()) != set(self._dimensions.keys()):
            return False
        return all(candidate[name] in values for name, values in self._dimensions.items())

    def check_candidate(self, candidate: Mapping[str, Any]) -> Candidate:
        """Validate a user-supplied point and return it as a Candidate."""
        unknown = set(candidate.keys()) - set(self._dimensions.keys())
        if unknown:
            raise ConfigurationError(f"Unknown parameter(s) in candidate: {sorted(unknown)}")
        missing = set(self._dimensions.keys()) - set(candidate.keys())
        if missing:
            raise ConfigurationError(f"Candidate is missing parameter(s): {sorted(missing)}")
        for name, values in self._dimensions.items():
            if candidate[name] not in values:
                raise ConfigurationError(
                    f"Value {candidate[name]!r} for parameter {name!r} is outside its domain"
                )
        return Candidate({name: candidate[name] for name in self._dimensions})

    def random_candidate(self, rng: Optional[random.Random] = None) -> Candidate:
        """Draw one value per parameter, uniformly and independently."""
        rng = rng or random
        return Candidate({name: rng.choice(values) for name, values in self._dimensions.items()})


@dataclass(frozen=True)
class ScoredCandidate:
    """A Candidate plus its scalar score (higher is better)."""

    candidate: Candidate
    score: float
    results: Optional[Dict[str, Any]] = None


@dataclass
class ExperimentResult:
    """
    Report returned by an experiment: the best candidate ever observed.

    ``parameters``/``score`` are None only when nothing could be evaluated
    (the strategy had no starting point to offer).
    """

    parameters: Optional[Dict[str, Any]]
    score: Optional[float]
    experiment_id: str = ""
    iterations: int = 0
    evaluations: int = 0
    elapsed: float = 0.0
    history: List[ScoredCandidate] = field(default_factory=list, repr=False)

    def __getitem__(self, key: str) -> Any:
        return self.as_dict()[key]

    def as_dict(self) -> Dict[str, Any]:
        return {"parameters": self.parameters, "score": self.score}
