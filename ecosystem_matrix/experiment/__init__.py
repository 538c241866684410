"""
Experiment management and execution.

This module provides the experiment store, the mirror, source, lock file and
working-copy helpers used while running an experiment, and the matrix engine
that drives them.
"""

from .engine import MatrixEngine, RunSummary
from .features import find_unstable_features
from .lockfile import LockManager
from .mirror import MirrorSync
from .sources import SourcePreparer
from .store import ExperimentStore
from .workdir import WorkDirIsolator

__all__ = [
    'MatrixEngine',
    'RunSummary',
    'find_unstable_features',
    'LockManager',
    'MirrorSync',
    'SourcePreparer',
    'ExperimentStore',
    'WorkDirIsolator',
]
