"""
Directory layout of the ecosystem regression matrix framework.

Every path the framework touches is derived from a single work directory,
resolved once from configuration and handed to the components that need it.
"""

from pathlib import Path
from typing import Optional, Union

from ..core.data_models import (
    Experiment,
    Package,
    SourceRepoPackage,
    Toolchain,
    validate_experiment_name,
)


class WorkspaceLayout:
    """
    Resolver for experiment, source, mirror and result paths.

    Layout::

        <work_dir>/ex/<name>/config.json
        <work_dir>/ex/<name>/sources/<toolchain>/<package id>/
        <work_dir>/ex/<name>/work/<toolchain>/<package id>/
        <work_dir>/ex/<name>/target/<toolchain>/
        <work_dir>/mirrors/<org>.<name>/
        <work_dir>/cache/registry/
        <work_dir>/results/<name>/
    """

    CONFIG_FILE = "config.json"

    def __init__(self, work_dir: Union[str, Path]):
        """
        Initialize the layout.

        Args:
            work_dir: Root of all framework state
        """
        self.work_dir = Path(work_dir)

    @property
    def experiments_dir(self) -> Path:
        return self.work_dir / "ex"

    @property
    def mirrors_dir(self) -> Path:
        return self.work_dir / "mirrors"

    @property
    def registry_cache_dir(self) -> Path:
        return self.work_dir / "cache" / "registry"

    @property
    def results_dir(self) -> Path:
        return self.work_dir / "results"

    def experiment_dir(self, ex_name: str) -> Path:
        """
        Directory of experiment ``ex_name``.

        Raises:
            ConfigError: If the name is not a plain directory name
        """
        validate_experiment_name(ex_name)
        return self.experiments_dir / ex_name

    def config_file(self, ex_name: str) -> Path:
        return self.experiment_dir(ex_name) / self.CONFIG_FILE

    def source_dir(self, ex: Experiment, toolchain: Toolchain, package: Package) -> Path:
        """Canonical source of ``package`` for ``toolchain`` in ``ex``."""
        return self.experiment_dir(ex.name) / "sources" / str(toolchain) / package.id

    def work_root(self, ex: Experiment, toolchain: Toolchain, package: Package) -> Path:
        """Parent directory of the ephemeral working copies of a task."""
        return self.experiment_dir(ex.name) / "work" / str(toolchain) / package.id

    def target_dir(self, ex_name: str, toolchain: Optional[Toolchain] = None) -> Path:
        """Compiled artifacts of an experiment, optionally for one toolchain."""
        target = self.experiment_dir(ex_name) / "target"
        return target / str(toolchain) if toolchain is not None else target

    def mirror_dir(self, package: SourceRepoPackage) -> Path:
        return self.mirrors_dir / f"{package.org}.{package.name}"

    def experiment_results_dir(self, ex_name: str) -> Path:
        validate_experiment_name(ex_name)
        return self.results_dir / ex_name
