from __future__ import annotations

from .target import CallableTarget, CommandTarget, Target, target_from_config
from .workdir import create_workdir, retain_files, scoped_workdir

__all__ = [
    "CallableTarget",
    "CommandTarget",
    "Target",
    "create_workdir",
    "retain_files",
    "scoped_workdir",
    "target_from_config",
]
