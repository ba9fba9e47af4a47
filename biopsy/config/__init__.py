from __future__ import annotations

from .settings import ExperimentSettings, load_settings, locate_config, parse_settings_dict, save_settings
from .targets import ObjectiveSpecConfig, TargetConfig, load_target, parse_target_dict

__all__ = [
    "ExperimentSettings",
    "ObjectiveSpecConfig",
    "TargetConfig",
    "load_settings",
    "load_target",
    "locate_config",
    "parse_settings_dict",
    "parse_target_dict",
    "save_settings",
]
