"""
Core module for the ecosystem regression matrix framework.

This module contains the data models, collaborator interfaces and the
exception hierarchy that the rest of the framework builds on.
"""

from .data_models import (
    Mode,
    CapLints,
    CorpusSelection,
    TaskStatus,
    LockPolicy,
    Package,
    RegistryPackage,
    SourceRepoPackage,
    package_from_dict,
    Toolchain,
    validate_experiment_name,
    Experiment,
    BuildOutput,
    TaskOutcome,
)

from .interfaces import (
    CorpusSource,
    VersionControlMirror,
    ResultSink,
    ToolchainRuntime,
    ManifestPatcher,
    RegistryFetcher,
)

from .registry import RuntimeRegistry

from .exceptions import (
    FrameworkError,
    ConfigError,
    NotFoundError,
    CorruptStateError,
    CorpusConsistencyError,
    RepositoryError,
    MirrorFetchError,
    ShaCaptureError,
    BuildToolError,
    LockfileError,
    PatchError,
    SourceFetchError,
    InfrastructureError,
    StorageError,
    FilesystemError,
    ToolchainPrepareError,
    ResultSinkError,
)

__all__ = [
    # Data models
    "Mode",
    "CapLints",
    "CorpusSelection",
    "TaskStatus",
    "LockPolicy",
    "Package",
    "RegistryPackage",
    "SourceRepoPackage",
    "package_from_dict",
    "Toolchain",
    "validate_experiment_name",
    "Experiment",
    "BuildOutput",
    "TaskOutcome",
    # Interfaces
    "CorpusSource",
    "VersionControlMirror",
    "ResultSink",
    "ToolchainRuntime",
    "ManifestPatcher",
    "RegistryFetcher",
    # Registry
    "RuntimeRegistry",
    # Exceptions
    "FrameworkError",
    "ConfigError",
    "NotFoundError",
    "CorruptStateError",
    "CorpusConsistencyError",
    "RepositoryError",
    "MirrorFetchError",
    "ShaCaptureError",
    "BuildToolError",
    "LockfileError",
    "PatchError",
    "SourceFetchError",
    "InfrastructureError",
    "StorageError",
    "FilesystemError",
    "ToolchainPrepareError",
    "ResultSinkError",
]
