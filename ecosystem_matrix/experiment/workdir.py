"""
Ephemeral working copies of canonical package sources.

Build-tool runs that must not touch the canonical source operate on a fresh
copy, which is removed again on every exit path.
"""

import tempfile
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Callable, Iterator, TypeVar
import logging

from ..core.data_models import Experiment, Package, Toolchain
from ..core.exceptions import FilesystemError
from ..utils.file_utils import copy_dir, ensure_dir, remove_dir_all
from ..utils.layout import WorkspaceLayout

logger = logging.getLogger(__name__)

T = TypeVar('T')


class WorkDirIsolator:
    """
    Hands out working directories for (experiment, toolchain, package).

    Example:
        isolator = WorkDirIsolator(layout)
        with isolator.working_copy(ex, toolchain, package) as work_dir:
            runtime.run_build_tool(ex, work_dir, ['build'], ...)
    """

    def __init__(self, layout: WorkspaceLayout):
        self.layout = layout

    @contextmanager
    def working_copy(
        self,
        experiment: Experiment,
        toolchain: Toolchain,
        package: Package,
        allow_source_mutation: bool = False
    ) -> Iterator[Path]:
        """
        Yield a directory holding the sources of ``package``.

        With ``allow_source_mutation`` the canonical source itself is yielded.
        Otherwise it is copied into a uniquely named directory below the
        task's work root, which is removed when the block exits, whether it
        returns or raises. If the block raised, a failure to remove the copy
        is logged and the original error propagates.

        Raises:
            FilesystemError: If the copy cannot be created or removed
        """
        source_dir = self.layout.source_dir(experiment, toolchain, package)

        if allow_source_mutation:
            yield source_dir
            return

        work_root = ensure_dir(self.layout.work_root(experiment, toolchain, package))
        try:
            work_dir = Path(tempfile.mkdtemp(dir=work_root))
        except OSError as e:
            raise FilesystemError(
                f"Failed to create working directory: {e}",
                details={'path': str(work_root)}
            ) from e

        try:
            copy_dir(source_dir, work_dir)
            logger.debug(f"Working copy of {package} for {toolchain} at {work_dir}")
            yield work_dir
        except BaseException:
            self._discard(work_dir, work_root, keep_going=True)
            raise
        else:
            self._discard(work_dir, work_root)

    def _discard(self, work_dir: Path, work_root: Path, keep_going: bool = False) -> None:
        """
        Remove a working copy, and its work root once no sibling copy is left.

        With ``keep_going`` a removal failure is only logged, so that the error
        which ended the block is the one that propagates.
        """
        try:
            remove_dir_all(work_dir)
        except FilesystemError as e:
            if not keep_going:
                raise
            logger.warning(f"Failed to remove working copy {work_dir}: {e}")
            return

        # Fails while a sibling copy still exists.
        with suppress(OSError):
            work_root.rmdir()

    def with_working_copy(
        self,
        experiment: Experiment,
        toolchain: Toolchain,
        package: Package,
        allow_source_mutation: bool,
        action: Callable[[Path], T]
    ) -> T:
        """Run ``action`` on a working directory and return its result."""
        with self.working_copy(experiment, toolchain, package, allow_source_mutation) as work_dir:
            return action(work_dir)
