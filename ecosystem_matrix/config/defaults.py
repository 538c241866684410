"""
Default configurations for the ecosystem regression matrix framework.

This module provides default configuration presets for common scenarios.
"""

from typing import Dict

from .schema import (
    FrameworkConfig,
    DirectoriesConfig,
    ExecutionConfig,
    LockfileConfig,
    DemoCorpusConfig,
    LoggingConfig,
)
from ..core.exceptions import ConfigError


def get_default_config(work_dir: str = "./work") -> FrameworkConfig:
    """
    Get a default framework configuration.

    This configuration includes:
    - One worker per CPU and a 15 minute build timeout
    - Resumable runs (completed tasks are skipped)
    - Lock files shared across toolchains, except flag-aware ones
    - A two-entry demo corpus

    Args:
        work_dir: Root of the working directory tree

    Returns:
        Default framework configuration
    """
    return FrameworkConfig(
        directories=DirectoriesConfig(
            work_dir=work_dir,
            lists_dir="./lists",
        ),
        execution=ExecutionConfig(
            max_workers=None,
            build_timeout=900.0,
            skip_completed=True,
            fetch_mirrors=True,
        ),
        lockfile=LockfileConfig(
            share_across_toolchains=True,
            regenerate_for_flag_aware=True,
        ),
        demo_crates=DemoCorpusConfig(
            crates=["lazy_static"],
            github_repos=["brson/hello-rs"],
        ),
        logging=LoggingConfig(
            level="INFO",
            format="structured",
            stdout=True,
        ),
    )


def get_minimal_config(work_dir: str = "./work") -> FrameworkConfig:
    """
    Get a minimal configuration for quick local runs.

    Runs on a single worker without a progress bar, never touches the
    network for mirrors and always re-runs every task.

    Args:
        work_dir: Root of the working directory tree

    Returns:
        Minimal framework configuration
    """
    return FrameworkConfig(
        directories=DirectoriesConfig(work_dir=work_dir),
        execution=ExecutionConfig(
            max_workers=1,
            build_timeout=300.0,
            skip_completed=False,
            fetch_mirrors=False,
            show_progress=False,
        ),
        logging=LoggingConfig(
            level="DEBUG",
            format="text",
            stdout=True,
        ),
    )


def get_preset_config(preset_name: str, work_dir: str = "./work") -> FrameworkConfig:
    """
    Get a configuration preset by name.

    Args:
        preset_name: One of the names returned by ``list_presets``
        work_dir: Root of the working directory tree

    Raises:
        ConfigError: If the preset does not exist
    """
    presets = {
        'default': get_default_config,
        'minimal': get_minimal_config,
    }
    if preset_name not in presets:
        raise ConfigError(
            f"Unknown preset: {preset_name}",
            details={'available': sorted(presets)}
        )
    return presets[preset_name](work_dir)


def list_presets() -> Dict[str, str]:
    """List available configuration presets with descriptions."""
    return {
        'default': "Parallel, resumable runs with the standard demo corpus",
        'minimal': "Single worker, no mirror fetch, verbose logging",
    }
