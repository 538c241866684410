"""
Configuration schema for the ecosystem regression matrix framework.

This module defines the configuration dataclasses: process-wide directories,
execution limits, the lock file policy, the curated demo corpus, per-package
overrides and logging.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.data_models import Package, RegistryPackage, SourceRepoPackage


@dataclass
class DirectoriesConfig:
    """
    Process-wide directory roots.

    Attributes:
        work_dir: Root holding experiments, mirrors, caches and results
        lists_dir: Directory containing the corpus list files
    """
    work_dir: str = "./work"
    lists_dir: str = "./lists"


@dataclass
class ExecutionConfig:
    """
    Configuration for running the task grid.

    Attributes:
        max_workers: Size of the worker pool (None = number of CPUs)
        build_timeout: Timeout for a single build-tool invocation (seconds)
        skip_completed: Whether tasks already in the result sink are skipped
        fetch_mirrors: Whether mirrors are updated before the run
        show_progress: Whether a progress bar is displayed
    """
    max_workers: Optional[int] = None
    build_timeout: float = 900.0
    skip_completed: bool = True
    fetch_mirrors: bool = True
    show_progress: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.build_timeout <= 0:
            raise ValueError(f"build_timeout must be > 0, got {self.build_timeout}")

    @property
    def worker_count(self) -> int:
        return self.max_workers or os.cpu_count() or 1


@dataclass
class LockfileConfig:
    """
    Policy for dependency lock files.

    Attributes:
        share_across_toolchains: Reuse the first toolchain's lock file for
            the second toolchain instead of resolving again
        regenerate_for_flag_aware: Always resolve a fresh lock file for
            flag-aware toolchains, even when sharing is enabled
    """
    share_across_toolchains: bool = True
    regenerate_for_flag_aware: bool = True


@dataclass
class DemoCorpusConfig:
    """
    Curated subset of the corpus used by the demo selection.

    Attributes:
        crates: Exact registry package names
        github_repos: Suffixes of source repository URLs (e.g. ``org/name``)
    """
    crates: List[str] = field(default_factory=list)
    github_repos: List[str] = field(default_factory=list)

    @property
    def expected_count(self) -> int:
        return len(set(self.crates)) + len(self.github_repos)


@dataclass
class PackageOverride:
    """
    Per-package behaviour overrides.

    Attributes:
        skip: Record the task as skipped without building
        skip_tests: Only build the package in build-and-test mode
        update_lockfile: Regenerate the lock file even if one exists
        quiet: Do not keep build output in the result record
    """
    skip: bool = False
    skip_tests: bool = False
    update_lockfile: bool = False
    quiet: bool = False


@dataclass
class LoggingConfig:
    """
    Configuration for logging.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log format (structured, text)
        file_path: Path to log file (None = no file logging)
        stdout: Whether to log to stdout
    """
    level: str = "INFO"
    format: str = "structured"
    file_path: Optional[str] = None
    stdout: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR")
        if self.level not in valid_levels:
            raise ValueError(
                f"level must be one of {valid_levels}, got {self.level}"
            )
        valid_formats = ("structured", "text")
        if self.format not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class FrameworkConfig:
    """
    Top-level configuration of the framework.

    Attributes:
        directories: Directory roots
        execution: Task grid execution settings
        lockfile: Lock file policy
        demo_crates: Curated demo corpus
        crates: Overrides keyed by registry package name
        github_repos: Overrides keyed by ``org/name``
        logging: Logging configuration
    """
    directories: DirectoriesConfig = field(default_factory=DirectoriesConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    lockfile: LockfileConfig = field(default_factory=LockfileConfig)
    demo_crates: DemoCorpusConfig = field(default_factory=DemoCorpusConfig)
    crates: Dict[str, PackageOverride] = field(default_factory=dict)
    github_repos: Dict[str, PackageOverride] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def override_for(self, package: Package) -> PackageOverride:
        """Get the overrides that apply to ``package`` (defaults if none)."""
        if isinstance(package, RegistryPackage):
            return self.crates.get(package.name, PackageOverride())
        if isinstance(package, SourceRepoPackage):
            return self.github_repos.get(package.slug, PackageOverride())
        raise TypeError(f"unsupported package type: {type(package).__name__}")

    def should_update_lockfile(self, package: Package) -> bool:
        return self.override_for(package).update_lockfile

    def should_skip(self, package: Package) -> bool:
        return self.override_for(package).skip

    def should_skip_tests(self, package: Package) -> bool:
        return self.override_for(package).skip_tests

    def is_quiet(self, package: Package) -> bool:
        return self.override_for(package).quiet

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'directories': self._dataclass_to_dict(self.directories),
            'execution': self._dataclass_to_dict(self.execution),
            'lockfile': self._dataclass_to_dict(self.lockfile),
            'demo_crates': self._dataclass_to_dict(self.demo_crates),
            'crates': {k: self._dataclass_to_dict(v) for k, v in self.crates.items()},
            'github_repos': {
                k: self._dataclass_to_dict(v) for k, v in self.github_repos.items()
            },
            'logging': self._dataclass_to_dict(self.logging),
        }

    @staticmethod
    def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
        """Convert a dataclass to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for key in obj.__dataclass_fields__:
                value = getattr(obj, key)
                if hasattr(value, '__dataclass_fields__'):
                    result[key] = FrameworkConfig._dataclass_to_dict(value)
                elif isinstance(value, list):
                    result[key] = list(value)
                else:
                    result[key] = value
            return result
        return obj
