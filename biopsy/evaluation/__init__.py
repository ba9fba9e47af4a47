from __future__ import annotations

from .objective_handler import ObjectiveHandler, camelize, dimension_reduce, load_objectives

__all__ = ["ObjectiveHandler", "camelize", "dimension_reduce", "load_objectives"]
