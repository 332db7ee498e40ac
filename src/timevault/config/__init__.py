"""Configuration system for timevault.

This module provides TOML/YAML configuration loading, validation,
and schema definitions for the backup job graph.
"""

from .loader import ConfigError, find_config_file, load_config, parse_config
from .schema import Config, GlobalOptions, Job, RunPolicy

__all__ = [
    "Config",
    "GlobalOptions",
    "Job",
    "RunPolicy",
    "load_config",
    "parse_config",
    "find_config_file",
    "ConfigError",
]
