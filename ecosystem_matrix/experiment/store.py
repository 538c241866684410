"""
Persistence of experiment records.

Each experiment lives in its own directory under the workspace, with the
serialized record in ``config.json`` next to the canonical sources, working
copies and compiled artifacts produced while running it. Recorded results
live under the workspace results directory and share the experiment's
lifetime: deleting or redefining an experiment discards them.
"""

import json
from typing import List, Optional, Sequence
import logging

from ..core.data_models import (
    CapLints,
    CorpusSelection,
    Experiment,
    Mode,
    Package,
    Toolchain,
    validate_experiment_name,
)
from ..core.exceptions import (
    ConfigError,
    CorruptStateError,
    FilesystemError,
    NotFoundError,
    StorageError,
)
from ..corpus.selector import CorpusSelector
from ..utils.file_utils import copy_dir, ensure_dir, read_file, remove_dir_all, write_file
from ..utils.layout import WorkspaceLayout

logger = logging.getLogger(__name__)


class ExperimentStore:
    """
    Defines, loads, copies and deletes experiments.

    Example:
        store = ExperimentStore(layout, selector)
        store.define(
            'pr-12345',
            [Toolchain.parse('stable'), Toolchain.parse('beta')],
            selection=CorpusSelection.TOP_100,
        )
        experiment = store.load('pr-12345')
    """

    def __init__(self, layout: WorkspaceLayout, selector: Optional[CorpusSelector] = None):
        """
        Initialize the store.

        Args:
            layout: Workspace directory layout
            selector: Corpus selector used by ``define``
        """
        self.layout = layout
        self.selector = selector

    def define(
        self,
        ex_name: str,
        toolchains: Sequence[Toolchain],
        mode: Mode = Mode.BUILD_AND_TEST,
        selection: CorpusSelection = CorpusSelection.FULL,
        cap_lints: CapLints = CapLints.FORBID,
        rustflags: Optional[str] = None
    ) -> Experiment:
        """
        Define an experiment, replacing any experiment with the same name.

        Args:
            ex_name: Experiment name
            toolchains: The two toolchains to compare
            mode: What each task does
            selection: How the package list is chosen
            cap_lints: Lint policy applied to every build
            rustflags: Flag override for flag-aware toolchains

        Returns:
            The persisted experiment

        Raises:
            ConfigError: If the experiment is invalid
            StorageError: If the record cannot be written
        """
        validate_experiment_name(ex_name)
        if self.selector is None:
            raise ConfigError("a corpus selector is required to define experiments")

        experiment = self._new_experiment(
            ex_name, toolchains, self.selector.select(selection), mode, cap_lints, rustflags
        )
        self.delete(ex_name)
        self._write(experiment)
        return experiment

    def define_packages(
        self,
        ex_name: str,
        toolchains: Sequence[Toolchain],
        packages: Sequence[Package],
        mode: Mode = Mode.BUILD_AND_TEST,
        cap_lints: CapLints = CapLints.FORBID,
        rustflags: Optional[str] = None
    ) -> Experiment:
        """
        Validate and persist an experiment with an explicit package list,
        replacing any experiment with the same name.

        Raises:
            ConfigError: If the experiment is invalid
            StorageError: If the record cannot be written
        """
        experiment = self._new_experiment(ex_name, toolchains, packages, mode, cap_lints, rustflags)
        self.delete(ex_name)
        self._write(experiment)
        return experiment

    def _new_experiment(
        self,
        ex_name: str,
        toolchains: Sequence[Toolchain],
        packages: Sequence[Package],
        mode: Mode,
        cap_lints: CapLints,
        rustflags: Optional[str]
    ) -> Experiment:
        logger.info(f"Defining experiment {ex_name} for {len(packages)} packages")
        experiment = Experiment(
            name=ex_name,
            packages=list(packages),
            toolchains=list(toolchains),
            mode=mode,
            cap_lints=cap_lints,
            rustflags=rustflags,
        )

        experiment.validate()
        return experiment

    def load(self, ex_name: str) -> Experiment:
        """
        Load a persisted experiment.

        Raises:
            NotFoundError: If the experiment is not defined
            CorruptStateError: If the record cannot be parsed
        """
        config_file = self.layout.config_file(ex_name)
        try:
            raw = read_file(config_file)
        except FileNotFoundError as e:
            raise NotFoundError(
                f"experiment {ex_name} is not defined",
                details={'path': str(config_file)}
            ) from e
        except IOError as e:
            raise CorruptStateError(
                f"unable to read experiment {ex_name}: {e}",
                details={'path': str(config_file)}
            ) from e

        try:
            return Experiment.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, ConfigError) as e:
            raise CorruptStateError(
                f"experiment {ex_name} is corrupt: {e}",
                details={'path': str(config_file)}
            ) from e

    def exists(self, ex_name: str) -> bool:
        return self.layout.config_file(ex_name).exists()

    def list_experiments(self) -> List[str]:
        """Return the sorted names of all defined experiments."""
        if not self.layout.experiments_dir.exists():
            return []
        return sorted(
            path.name for path in self.layout.experiments_dir.iterdir()
            if (path / WorkspaceLayout.CONFIG_FILE).exists()
        )

    def copy(self, src_name: str, dst_name: str) -> Experiment:
        """
        Duplicate an experiment, including sources, artifacts and results.

        The copied record is renamed to ``dst_name`` so that the copy resolves
        its own directories.

        Raises:
            NotFoundError: If the source experiment is not defined
            ConfigError: If either name is invalid or the destination exists
            FilesystemError: If the tree cannot be copied
        """
        src_dir = self.layout.experiment_dir(src_name)
        dst_dir = self.layout.experiment_dir(dst_name)

        if not src_dir.exists():
            raise NotFoundError(f"experiment {src_name} is not defined")

        if dst_dir.exists():
            raise ConfigError(f"experiment {dst_name} is already defined")

        experiment = self.load(src_name)
        experiment.name = dst_name
        experiment.validate()

        logger.info(f"Copying experiment {src_name} to {dst_name}")
        src_results = self.layout.experiment_results_dir(src_name)
        dst_results = self.layout.experiment_results_dir(dst_name)
        # Stale results left behind under the destination name.
        remove_dir_all(dst_results)
        copy_dir(src_dir, dst_dir)
        if src_results.exists():
            copy_dir(src_results, dst_results)
        self._write(experiment)
        return experiment

    def delete(self, ex_name: str) -> None:
        """Delete an experiment, its recorded results and everything generated for it. Idempotent."""
        ex_dir = self.layout.experiment_dir(ex_name)
        results_dir = self.layout.experiment_results_dir(ex_name)
        if ex_dir.exists() or results_dir.exists():
            logger.info(f"Deleting experiment {ex_name}")
        remove_dir_all(ex_dir)
        remove_dir_all(results_dir)

    def delete_all_target_dirs(self, ex_name: str) -> None:
        """Remove the compiled artifacts of an experiment. Idempotent."""
        target_dir = self.layout.target_dir(ex_name)
        if target_dir.exists():
            logger.info(f"Deleting target directories of {ex_name}")
            remove_dir_all(target_dir)

    def _write(self, experiment: Experiment) -> None:
        config_file = self.layout.config_file(experiment.name)
        try:
            ensure_dir(config_file.parent)
            logger.info(f"Writing experiment config to {config_file}")
            write_file(config_file, json.dumps(experiment.to_dict(), indent=2))
        except (FilesystemError, IOError) as e:
            raise StorageError(
                f"failed to persist experiment {experiment.name}: {e}",
                details={'path': str(config_file)}
            ) from e
