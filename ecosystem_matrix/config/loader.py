"""
Configuration loader for the ecosystem regression matrix framework.

This module provides functions to load configuration from YAML files,
with support for environment variable substitution and validation.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml

from .schema import (
    FrameworkConfig,
    DirectoriesConfig,
    ExecutionConfig,
    LockfileConfig,
    DemoCorpusConfig,
    PackageOverride,
    LoggingConfig,
)
from ..core.exceptions import ConfigError

logger = logging.getLogger(__name__)


def _resolve_env_vars(obj: Any) -> Any:
    """
    Recursively replace ${VAR} with environment variable values.

    Args:
        obj: Object to process (dict, list, str, or other)

    Returns:
        Object with environment variables resolved
    """
    pattern = r'\$\{([^}]+)\}'

    def replace_vars(value: Any) -> Any:
        if isinstance(value, dict):
            return {k: replace_vars(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [replace_vars(item) for item in value]
        elif isinstance(value, str):
            def replacer(match: re.Match) -> str:
                var_name = match.group(1)
                return os.environ.get(var_name, match.group(0))
            return re.sub(pattern, replacer, value)
        return value

    return replace_vars(obj)


def _load_yaml_file(path: str) -> Dict[str, Any]:
    """
    Load a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Dictionary with the loaded configuration

    Raises:
        ConfigError: If the file cannot be loaded
    """
    file_path = Path(path)

    if not file_path.exists():
        raise ConfigError(
            f"Configuration file not found: {path}",
            details={'path': str(file_path.absolute())}
        )

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML file: {e}",
            details={'path': str(file_path.absolute())}
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={'path': str(file_path.absolute())}
        ) from e

    if content is None:
        content = {}

    if not isinstance(content, dict):
        raise ConfigError(
            "Configuration file must contain a dictionary",
            details={'path': str(file_path.absolute()), 'type': type(content).__name__}
        )

    return content


def _section(config: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Get a mapping section, treating a missing or null section as empty."""
    value = config.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(
            f"Configuration section '{key}' must be a mapping",
            details={'type': type(value).__name__}
        )
    return value


def _build_directories_config(config: Dict[str, Any]) -> DirectoriesConfig:
    """Build DirectoriesConfig from dictionary."""
    return DirectoriesConfig(
        work_dir=str(config.get('work_dir', './work')),
        lists_dir=str(config.get('lists_dir', './lists')),
    )


def _build_execution_config(config: Dict[str, Any]) -> ExecutionConfig:
    """Build ExecutionConfig from dictionary."""
    return ExecutionConfig(
        max_workers=config.get('max_workers'),
        build_timeout=float(config.get('build_timeout', 900.0)),
        skip_completed=config.get('skip_completed', True),
        fetch_mirrors=config.get('fetch_mirrors', True),
        show_progress=config.get('show_progress', True),
    )


def _build_lockfile_config(config: Dict[str, Any]) -> LockfileConfig:
    """Build LockfileConfig from dictionary."""
    return LockfileConfig(
        share_across_toolchains=config.get('share_across_toolchains', True),
        regenerate_for_flag_aware=config.get('regenerate_for_flag_aware', True),
    )


def _build_demo_config(config: Dict[str, Any]) -> DemoCorpusConfig:
    """Build DemoCorpusConfig from dictionary."""
    return DemoCorpusConfig(
        crates=list(config.get('crates') or []),
        github_repos=list(config.get('github_repos') or []),
    )


def _build_overrides(config: Dict[str, Any], section: str) -> Dict[str, PackageOverride]:
    """Build per-package overrides, accepting dashed or underscored keys."""
    overrides = {}
    for name, raw in config.items():
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Override for '{name}' in '{section}' must be a mapping",
                details={'type': type(raw).__name__}
            )
        normalized = {str(k).replace('-', '_'): v for k, v in raw.items()}
        unknown = set(normalized) - set(PackageOverride.__dataclass_fields__)
        if unknown:
            raise ConfigError(
                f"Unknown override keys for '{name}' in '{section}'",
                details={'keys': sorted(unknown)}
            )
        overrides[str(name)] = PackageOverride(**normalized)
    return overrides


def _build_logging_config(config: Dict[str, Any]) -> LoggingConfig:
    """Build LoggingConfig from dictionary."""
    return LoggingConfig(
        level=str(config.get('level', 'INFO')).upper(),
        format=config.get('format', 'structured'),
        file_path=config.get('file_path'),
        stdout=config.get('stdout', True),
    )


def load_config_from_dict(config: Dict[str, Any]) -> FrameworkConfig:
    """
    Load framework configuration from a dictionary.

    Args:
        config: Configuration dictionary

    Returns:
        FrameworkConfig object

    Raises:
        ConfigError: If the configuration is invalid
    """
    config = _resolve_env_vars(config)

    try:
        return FrameworkConfig(
            directories=_build_directories_config(_section(config, 'directories')),
            execution=_build_execution_config(_section(config, 'execution')),
            lockfile=_build_lockfile_config(_section(config, 'lockfile')),
            demo_crates=_build_demo_config(_section(config, 'demo_crates')),
            crates=_build_overrides(_section(config, 'crates'), 'crates'),
            github_repos=_build_overrides(_section(config, 'github_repos'), 'github_repos'),
            logging=_build_logging_config(_section(config, 'logging')),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(path: str) -> FrameworkConfig:
    """
    Load framework configuration from a YAML file.

    This function loads a YAML configuration file, resolves environment
    variables (syntax: ${VAR_NAME}), and validates the configuration.

    Args:
        path: Path to the YAML configuration file

    Returns:
        FrameworkConfig object

    Raises:
        ConfigError: If the file cannot be loaded or is invalid

    Example:
        >>> config = load_config('matrix.yaml')
        >>> config.execution.max_workers
        8
    """
    raw_config = _load_yaml_file(path)
    config = load_config_from_dict(raw_config)
    validate_config(config)
    return config


def load_config_from_env(
    env_var: str = "ECOSYSTEM_MATRIX_CONFIG",
    default_path: Optional[str] = None
) -> FrameworkConfig:
    """
    Load configuration from environment variable or default path.

    Args:
        env_var: Environment variable name containing config path
        default_path: Default configuration path if env var not set

    Returns:
        FrameworkConfig object

    Raises:
        ConfigError: If no configuration can be loaded
    """
    config_path = os.environ.get(env_var, default_path)

    if config_path is None:
        raise ConfigError(
            f"No configuration found. Set {env_var} environment variable "
            "or provide a default path."
        )

    return load_config(config_path)


def validate_config(config: FrameworkConfig) -> None:
    """
    Validate a framework configuration.

    Args:
        config: Configuration to validate

    Raises:
        ConfigError: If the configuration is invalid
    """
    errors = []

    for label, raw in (
        ('work_dir', config.directories.work_dir),
        ('lists_dir', config.directories.lists_dir),
    ):
        path = Path(raw)
        if path.exists() and not path.is_dir():
            errors.append(f"{label} exists but is not a directory: {raw}")

    if len(set(config.demo_crates.crates)) != len(config.demo_crates.crates):
        errors.append("Duplicate names in demo_crates.crates")

    for repo in config.github_repos:
        if repo.count('/') != 1:
            errors.append(f"github_repos keys must look like 'org/name', got '{repo}'")

    if errors:
        raise ConfigError(
            "Configuration validation failed",
            details={'errors': errors}
        )

    logger.info("Configuration validation passed")


def save_config(config: FrameworkConfig, path: str) -> None:
    """
    Save framework configuration to a YAML file.

    Args:
        config: Configuration to save
        path: Path to save the configuration

    Raises:
        ConfigError: If the configuration cannot be saved
    """
    try:
        config_dict = config.to_dict()
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to save configuration: {e}",
            details={'path': path}
        ) from e
