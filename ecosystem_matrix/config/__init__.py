"""
Configuration management for the ecosystem regression matrix framework.

This module provides configuration loading, validation, and default
configuration management.
"""

from .schema import (
    FrameworkConfig,
    DirectoriesConfig,
    ExecutionConfig,
    LockfileConfig,
    DemoCorpusConfig,
    PackageOverride,
    LoggingConfig,
)

from .loader import load_config, load_config_from_dict, validate_config, save_config
from .defaults import get_default_config, get_minimal_config, get_preset_config

__all__ = [
    # Schema classes
    "FrameworkConfig",
    "DirectoriesConfig",
    "ExecutionConfig",
    "LockfileConfig",
    "DemoCorpusConfig",
    "PackageOverride",
    "LoggingConfig",
    # Loader functions
    "load_config",
    "load_config_from_dict",
    "validate_config",
    "save_config",
    # Default configs
    "get_default_config",
    "get_minimal_config",
    "get_preset_config",
]
