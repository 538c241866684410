"""
Population of canonical package sources.

Each (experiment, toolchain, package) owns a canonical source directory.
Registry packages are extracted from their registry archive; source-repo
packages are copied from their mirror and moved to the pinned commit when
one is set.
"""

from pathlib import Path
from typing import Optional
import logging

from ..core.data_models import Experiment, Package, RegistryPackage, SourceRepoPackage, Toolchain
from ..core.exceptions import FrameworkError, RepositoryError, SourceFetchError
from ..core.interfaces import RegistryFetcher
from ..utils.file_utils import copy_dir, remove_dir_all
from ..utils.git_utils import checkout_commit, fetch_commit, get_current_commit, is_git_repository
from ..utils.layout import WorkspaceLayout

logger = logging.getLogger(__name__)


class SourcePreparer:
    """
    Populates canonical sources that do not exist yet.

    Example:
        preparer = SourcePreparer(layout, HttpRegistryFetcher(layout.registry_cache_dir))
        for toolchain in experiment.toolchains:
            preparer.populate(experiment, toolchain, package)
    """

    def __init__(
        self,
        layout: WorkspaceLayout,
        fetcher: Optional[RegistryFetcher] = None,
        git_timeout: float = 300.0
    ):
        self.layout = layout
        self.fetcher = fetcher
        self.git_timeout = git_timeout

    def is_populated(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> bool:
        source_dir = self.layout.source_dir(experiment, toolchain, package)
        return source_dir.is_dir() and any(source_dir.iterdir())

    def populate(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> Path:
        """
        Make sure the canonical source of ``package`` exists.

        A partially populated directory is removed again, so that the next
        attempt starts from scratch.

        Returns:
            The canonical source directory

        Raises:
            SourceFetchError: If the sources cannot be obtained
        """
        source_dir = self.layout.source_dir(experiment, toolchain, package)
        if self.is_populated(experiment, toolchain, package):
            return source_dir

        logger.info(f"Populating sources of {package} for {toolchain}")
        try:
            if isinstance(package, RegistryPackage):
                self._populate_registry(package, source_dir)
            elif isinstance(package, SourceRepoPackage):
                self._populate_repo(package, source_dir)
            else:
                raise SourceFetchError(f"unsupported package kind: {package!r}")
        except FrameworkError:
            remove_dir_all(source_dir)
            raise
        except Exception as e:
            remove_dir_all(source_dir)
            raise SourceFetchError(
                f"failed to obtain sources of {package}",
                details={'dir': str(source_dir)}
            ) from e

        return source_dir

    def _populate_registry(self, package: RegistryPackage, source_dir: Path) -> None:
        if self.fetcher is None:
            raise SourceFetchError(f"no registry fetcher configured for {package}")
        self.fetcher.fetch(package, source_dir)

    def _populate_repo(self, package: SourceRepoPackage, source_dir: Path) -> None:
        mirror_dir = self.layout.mirror_dir(package)
        if not is_git_repository(mirror_dir):
            raise SourceFetchError(
                f"no mirror available for GitHub repo {package.slug}",
                details={'mirror': str(mirror_dir)}
            )

        copy_dir(mirror_dir, source_dir)
        if package.sha is None:
            return

        try:
            if get_current_commit(source_dir) != package.sha:
                fetch_commit(source_dir, package.sha, timeout=self.git_timeout)
                checkout_commit(source_dir, package.sha, force=True)
        except RepositoryError as e:
            raise SourceFetchError(
                f"unable to check out {package.sha} of GitHub repo {package.slug}",
                details={'dir': str(source_dir)}
            ) from e
