"""
Ecosystem Regression Matrix

Builds and tests a corpus of packages with two toolchains side by side, so
that regressions introduced by a toolchain change show up as packages that
pass with one toolchain and fail with the other.
"""

__version__ = "1.0.0"

# Core abstractions
from .core.data_models import (
    Mode,
    CapLints,
    CorpusSelection,
    TaskStatus,
    LockPolicy,
    Package,
    RegistryPackage,
    SourceRepoPackage,
    Toolchain,
    Experiment,
    TaskOutcome,
)
from .core.interfaces import (
    CorpusSource,
    VersionControlMirror,
    ResultSink,
    ToolchainRuntime,
    ManifestPatcher,
    RegistryFetcher,
)
from .core.registry import RuntimeRegistry
from .core.exceptions import FrameworkError, InfrastructureError

# Configuration
from .config import FrameworkConfig, load_config, get_default_config

# Corpus
from .corpus import CorpusSelector, JsonCorpusSource

# Experiment
from .experiment import (
    ExperimentStore,
    MatrixEngine,
    RunSummary,
    MirrorSync,
    SourcePreparer,
    LockManager,
    WorkDirIsolator,
)

# Backends
from .backends import HttpRegistryFetcher, RustupToolchainRuntime
from .results import JsonlResultSink
from .utils import GitMirror, WorkspaceLayout, configure_logging

__all__ = [
    # Version
    '__version__',

    # Core abstractions
    'Mode',
    'CapLints',
    'CorpusSelection',
    'TaskStatus',
    'LockPolicy',
    'Package',
    'RegistryPackage',
    'SourceRepoPackage',
    'Toolchain',
    'Experiment',
    'TaskOutcome',
    'CorpusSource',
    'VersionControlMirror',
    'ResultSink',
    'ToolchainRuntime',
    'ManifestPatcher',
    'RegistryFetcher',
    'RuntimeRegistry',
    'FrameworkError',
    'InfrastructureError',

    # Configuration
    'FrameworkConfig',
    'load_config',
    'get_default_config',

    # Corpus
    'CorpusSelector',
    'JsonCorpusSource',

    # Experiment
    'ExperimentStore',
    'MatrixEngine',
    'RunSummary',
    'MirrorSync',
    'SourcePreparer',
    'LockManager',
    'WorkDirIsolator',

    # Backends
    'HttpRegistryFetcher',
    'RustupToolchainRuntime',
    'JsonlResultSink',
    'GitMirror',
    'WorkspaceLayout',
    'configure_logging',
]
