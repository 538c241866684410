"""
Dependency lock files for experiment packages.

Lock files are generated in the canonical source, once per toolchain or shared
between the toolchains according to the lock file policy, and dependencies
are then fetched from an isolated copy so the canonical source is not
modified by the fetch.
"""

import shutil
from typing import Callable
import logging

from ..config.schema import FrameworkConfig
from ..core.data_models import Experiment, LockPolicy, Package, Toolchain
from ..core.exceptions import BuildToolError, FilesystemError, LockfileError
from ..core.interfaces import ToolchainRuntime
from ..utils.layout import WorkspaceLayout
from .workdir import WorkDirIsolator

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "Cargo.lock"

GENERATE_LOCKFILE_ARGS = ["generate-lockfile", "--manifest-path", "Cargo.toml", "-Zno-index-update"]
FETCH_ARGS = ["fetch", "--locked", "--manifest-path", "Cargo.toml"]


class LockManager:
    """
    Generates lock files and fetches locked dependencies.

    Example:
        locks = LockManager(config, layout, isolator, runtimes.get)
        locks.ensure_lockfiles(experiment, package)
        for toolchain in experiment.toolchains:
            locks.fetch_crate_deps(experiment, toolchain, package)
    """

    def __init__(
        self,
        config: FrameworkConfig,
        layout: WorkspaceLayout,
        isolator: WorkDirIsolator,
        runtime_provider: Callable[[Toolchain], ToolchainRuntime]
    ):
        """
        Initialize the lock manager.

        Args:
            config: Framework configuration (lock file policy and overrides)
            layout: Workspace directory layout
            isolator: Provider of working directories
            runtime_provider: Returns the runtime of a toolchain
        """
        self.config = config
        self.layout = layout
        self.isolator = isolator
        self.runtime_provider = runtime_provider

    def has_lockfile(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> bool:
        return (self.layout.source_dir(experiment, toolchain, package) / LOCKFILE_NAME).exists()

    def capture_lockfile(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> None:
        """
        Generate the lock file of ``package`` in its canonical source.

        Skipped when a lock file already exists, unless the package is
        configured to always update it.

        Raises:
            LockfileError: If dependency resolution fails
        """
        if self.has_lockfile(experiment, toolchain, package) \
                and not self.config.should_update_lockfile(package):
            logger.info(f"Package {package} has a lockfile, skipping")
            return

        runtime = self.runtime_provider(toolchain)

        def generate(work_dir):
            return runtime.run_build_tool(
                experiment,
                work_dir,
                GENERATE_LOCKFILE_ARGS,
                LockPolicy.UNLOCKED,
                allow_network=True,
                capture_output=True,
            )

        try:
            self.isolator.with_working_copy(
                experiment, toolchain, package, True, generate
            )
        except BuildToolError as e:
            raise LockfileError(
                f"failed to generate lockfile for {package}",
                details={'toolchain': str(toolchain)}
            ) from e

        logger.info(f"Generated lockfile for {package} ({toolchain})")

    def fetch_crate_deps(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> None:
        """
        Download the locked dependencies of ``package`` into the shared cache.

        This is the only build-tool step of a task that reaches the network:
        the dependency cache starts empty for every toolchain, so the crates
        pinned by the lock file have to be downloaded once. ``--locked`` keeps
        the download restricted to exactly those pinned versions, and the build
        and test steps that follow run offline with ``--frozen`` against the
        populated cache. Runs in an isolated copy, holding the cache lock.

        Raises:
            BuildToolError: If the fetch fails
        """
        runtime = self.runtime_provider(toolchain)

        def fetch(work_dir):
            return runtime.run_build_tool(
                experiment,
                work_dir,
                FETCH_ARGS,
                LockPolicy.UNLOCKED,
                allow_network=True,
                capture_output=True,
            )

        self.isolator.with_working_copy(experiment, toolchain, package, False, fetch)
        logger.debug(f"Fetched dependencies of {package} ({toolchain})")

    def ensure_lockfiles(self, experiment: Experiment, package: Package) -> None:
        """
        Make sure every toolchain's canonical source of ``package`` is locked.

        The first toolchain always resolves its own lock file. The second
        toolchain receives a copy of it when sharing is enabled and no
        flag-aware toolchain requires a fresh resolution; otherwise it
        resolves its own.

        Raises:
            LockfileError: If dependency resolution fails
            FilesystemError: If the shared lock file cannot be copied
        """
        first, second = experiment.toolchains
        self.capture_lockfile(experiment, first, package)

        if not self._shares_lockfile(experiment):
            self.capture_lockfile(experiment, second, package)
            return

        if self.has_lockfile(experiment, second, package) \
                and not self.config.should_update_lockfile(package):
            return

        src = self.layout.source_dir(experiment, first, package) / LOCKFILE_NAME
        dest = self.layout.source_dir(experiment, second, package) / LOCKFILE_NAME
        if not src.exists():
            raise LockfileError(
                f"no lockfile was generated for {package}",
                details={'toolchain': str(first)}
            )

        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise FilesystemError(
                f"Failed to share lockfile of {package}: {e}",
                details={'src': str(src), 'dest': str(dest)}
            ) from e
        logger.debug(f"Shared lockfile of {package} with {second}")

    def _shares_lockfile(self, experiment: Experiment) -> bool:
        policy = self.config.lockfile
        if not policy.share_across_toolchains:
            return False
        if policy.regenerate_for_flag_aware:
            return not any(tc.flag_aware for tc in experiment.toolchains)
        return True
