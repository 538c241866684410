"""
Abstract base classes for the collaborators of the matrix engine.

The engine itself only orchestrates. Reading the corpus, talking to version
control, running the build tool, patching manifests, fetching registry
sources and storing results are delegated to implementations of the
interfaces below.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .data_models import (
        BuildOutput,
        Experiment,
        LockPolicy,
        Package,
        RegistryPackage,
        SourceRepoPackage,
        TaskOutcome,
        Toolchain,
    )


class CorpusSource(ABC):
    """
    Static source of known packages.

    Example:
        >>> source = JsonCorpusSource('./lists')
        >>> packages = source.read_all_packages()
    """

    @abstractmethod
    def read_all_packages(self) -> List['Package']:
        """
        Read every known package.

        Returns:
            Sorted list of unique packages
        """
        pass

    @abstractmethod
    def read_popularity_ranked(self) -> List['Package']:
        """
        Read packages ordered from most to least popular.

        Returns:
            Ranked list of packages
        """
        pass


class VersionControlMirror(ABC):
    """Local mirrors of source repositories."""

    @abstractmethod
    def shallow_clone_or_pull(self, url: str, local_dir: Path) -> None:
        """
        Clone ``url`` into ``local_dir`` or update an existing clone.

        Raises:
            MirrorFetchError: If the clone or update fails
        """
        pass

    @abstractmethod
    def resolve_head(self, local_dir: Path) -> str:
        """
        Resolve the commit currently checked out in ``local_dir``.

        Raises:
            ShaCaptureError: If the commit cannot be resolved
        """
        pass


class ResultSink(ABC):
    """
    Destination of everything an experiment run produces.

    The engine writes to a sink from a single thread, but implementations
    are free to be thread-safe.
    """

    @abstractmethod
    def record_sha(
        self,
        experiment: 'Experiment',
        package: 'SourceRepoPackage',
        sha: str
    ) -> None:
        """
        Record the commit a source-repo package was built from.

        Raises:
            ResultSinkError: If the write fails
        """
        pass

    @abstractmethod
    def record_task_outcome(
        self,
        experiment: 'Experiment',
        toolchain: 'Toolchain',
        package: 'Package',
        outcome: 'TaskOutcome'
    ) -> None:
        """
        Durably record the outcome of one task.

        Raises:
            ResultSinkError: If the write fails
        """
        pass

    def completed_tasks(self, experiment: 'Experiment') -> set:
        """
        Return ``(str(toolchain), package.id)`` pairs already recorded.

        Sinks that cannot answer return an empty set, which disables resuming.
        """
        return set()


class ToolchainRuntime(ABC):
    """
    One installed toolchain and the build tool that ships with it.
    """

    def __init__(self, toolchain: 'Toolchain'):
        self.toolchain = toolchain

    @abstractmethod
    def prepare(self) -> None:
        """
        Install or build the toolchain. Must be idempotent.

        Raises:
            ToolchainPrepareError: If the toolchain cannot be installed
        """
        pass

    @abstractmethod
    def run_build_tool(
        self,
        experiment: 'Experiment',
        working_dir: Path,
        args: Sequence[str],
        lock_policy: 'LockPolicy',
        allow_network: bool,
        capture_output: bool
    ) -> 'BuildOutput':
        """
        Run the build tool inside ``working_dir``.

        Args:
            experiment: Experiment the run belongs to (lint policy, flags)
            working_dir: Directory containing the package manifest
            args: Build tool arguments
            lock_policy: Whether the shared dependency cache may be written
            allow_network: Whether the build tool may reach the network
            capture_output: Whether stdout/stderr are captured

        Returns:
            BuildOutput of a successful run

        Raises:
            BuildToolError: If the build tool exits unsuccessfully, times
                out or cannot be started
        """
        pass


class ManifestPatcher(ABC):
    """Applies compatibility patches to registry package manifests."""

    @abstractmethod
    def patch(self, source_dir: Path, package: 'RegistryPackage') -> None:
        """
        Patch the manifest found in ``source_dir`` in place.

        Raises:
            PatchError: If the manifest cannot be patched
        """
        pass


class RegistryFetcher(ABC):
    """Downloads and extracts registry package sources."""

    @abstractmethod
    def fetch(self, package: 'RegistryPackage', dest_dir: Path) -> None:
        """
        Extract the sources of ``package`` into ``dest_dir``.

        Raises:
            SourceFetchError: If the download or extraction fails
        """
        pass
