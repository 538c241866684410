"""
Synchronization of source-repository mirrors.

Mirrors are refreshed on a best-effort basis: a repository that cannot be
fetched is reported and skipped. Capturing the commit each mirror points at
is strict, since results would be unattributable without it.
"""

from typing import Callable, Iterable, Optional
import logging

from ..core.data_models import Experiment, SourceRepoPackage
from ..core.exceptions import MirrorFetchError, ResultSinkError
from ..core.interfaces import ResultSink, VersionControlMirror
from ..utils.file_utils import ensure_dir
from ..utils.layout import WorkspaceLayout
from ..utils.logging_utils import report_error

logger = logging.getLogger(__name__)


class MirrorSync:
    """
    Keeps the mirrors of an experiment's source-repo packages up to date.

    Example:
        sync = MirrorSync(layout, GitMirror())
        sync.fetch_repo_crates(experiment)
        sync.capture_shas(experiment, experiment.source_repo_packages(), sink)
    """

    def __init__(
        self,
        layout: WorkspaceLayout,
        mirror: VersionControlMirror,
        error_reporter: Optional[Callable[[BaseException], None]] = None
    ):
        """
        Initialize the mirror sync.

        Args:
            layout: Workspace directory layout
            mirror: Version-control backend
            error_reporter: Called with every fetch failure; defaults to
                logging the error and its causes
        """
        self.layout = layout
        self.mirror = mirror
        self.error_reporter = error_reporter or report_error
        self.logger = logging.getLogger(__name__)

    def fetch_repo_crates(self, experiment: Experiment) -> int:
        """
        Clone or update the mirror of every source-repo package.

        Failures are reported and do not stop the loop.

        Returns:
            Number of mirrors that failed to update
        """
        packages = experiment.source_repo_packages()
        if packages:
            ensure_dir(self.layout.mirrors_dir)

        failures = 0
        for package in packages:
            local_dir = self.layout.mirror_dir(package)
            self.logger.info(f"[MIRROR] Fetching {package.url}")
            try:
                self.mirror.shallow_clone_or_pull(package.url, local_dir)
            except MirrorFetchError as e:
                failures += 1
                self.error_reporter(e)

        if failures:
            self.logger.warning(f"[MIRROR] {failures}/{len(packages)} mirrors failed to update")
        return failures

    def capture_shas(
        self,
        experiment: Experiment,
        packages: Iterable[SourceRepoPackage],
        sink: ResultSink
    ) -> None:
        """
        Record the commit every mirror is checked out at.

        Raises:
            ShaCaptureError: If a mirror's commit cannot be resolved
            ResultSinkError: If the sink rejects a record
        """
        for package in packages:
            sha = self.mirror.resolve_head(self.layout.mirror_dir(package))
            self.logger.debug(f"[MIRROR] {package.slug} is at {sha}")

            try:
                sink.record_sha(experiment, package, sha)
            except ResultSinkError as e:
                raise ResultSinkError(
                    f"failed to record sha of GitHub repo {package.slug}",
                    details={'sha': sha}
                ) from e
