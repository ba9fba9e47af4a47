from __future__ import annotations

from typing import Any, Mapping, Optional


class BiopsyError(Exception):
    """Base class for all errors raised by biopsy."""


class ConfigurationError(BiopsyError, ValueError):
    """
    Raised when an experiment cannot produce meaningful results.

    Covers invalid parameter spaces, malformed target/settings files and
    objective functions that do not implement ``run``. Always fatal.
    """


class EvaluationAborted(BiopsyError):
    """
    Raised when a single candidate could not be scored.

    Typically a required output file is missing or empty after the target
    ran. The experiment treats the candidate as worst-possible and carries on.
    """

    def __init__(self, reason: str, candidate: Optional[Mapping[str, Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.candidate = candidate


class StrategyExhausted(BiopsyError):
    """Raised by a strategy that has no admissible candidate left to propose."""
