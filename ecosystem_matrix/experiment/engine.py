"""
Matrix execution engine.

Runs every (toolchain, package) task of an experiment: sources are populated,
patched and locked once per package, then each toolchain fetches the locked
dependencies and builds or tests the package in an isolated working copy.
Task outcomes are recorded in the result sink by the thread calling ``run``.
"""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import logging

from tqdm import tqdm

from ..config.schema import FrameworkConfig
from ..core.data_models import (
    Experiment,
    LockPolicy,
    Mode,
    Package,
    RegistryPackage,
    TaskOutcome,
    TaskStatus,
    Toolchain,
)
from ..core.exceptions import (
    BuildToolError,
    FrameworkError,
    InfrastructureError,
    PatchError,
    ToolchainPrepareError,
)
from ..core.interfaces import ManifestPatcher, ResultSink, ToolchainRuntime
from ..utils.file_utils import ensure_dir
from ..utils.layout import WorkspaceLayout
from .features import find_unstable_features
from .lockfile import LockManager
from .mirror import MirrorSync
from .sources import SourcePreparer
from .workdir import WorkDirIsolator

logger = logging.getLogger(__name__)

BUILD_ARGS = ["build", "--frozen"]
TEST_ARGS = ["test", "--frozen"]
CHECK_ARGS = ["check", "--frozen", "--all-targets"]


@dataclass
class RunSummary:
    """Counts of the outcomes recorded during one run."""
    experiment: str
    total_tasks: int = 0
    already_completed: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    cancelled: bool = False
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def recorded(self) -> int:
        return sum(self.counts.values())

    def add(self, outcome: TaskOutcome) -> None:
        key = outcome.status.value
        self.counts[key] = self.counts.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'experiment': self.experiment,
            'total_tasks': self.total_tasks,
            'already_completed': self.already_completed,
            'recorded': self.recorded,
            'counts': dict(self.counts),
            'cancelled': self.cancelled,
            'duration': self.duration,
        }


class MatrixEngine:
    """
    Runs the task grid of an experiment.

    This class handles:
    - Preparing both toolchains before any task runs
    - Refreshing mirrors and recording their commits
    - Preparing each package (sources, patches, lock files) exactly once
    - Running tasks on a bounded worker pool
    - Recording outcomes and resuming interrupted runs

    Example:
        runtimes = RuntimeRegistry(lambda tc: RustupToolchainRuntime(tc, layout))
        engine = MatrixEngine(
            config, layout, runtimes, JsonlResultSink(layout.results_dir),
            preparer=SourcePreparer(layout, HttpRegistryFetcher(layout.registry_cache_dir)),
            mirror_sync=MirrorSync(layout, GitMirror()),
        )
        summary = engine.run(store.load('pr-12345'))
    """

    def __init__(
        self,
        config: FrameworkConfig,
        layout: WorkspaceLayout,
        runtime_provider: Callable[[Toolchain], ToolchainRuntime],
        sink: ResultSink,
        preparer: Optional[SourcePreparer] = None,
        manifest_patcher: Optional[ManifestPatcher] = None,
        mirror_sync: Optional[MirrorSync] = None,
        isolator: Optional[WorkDirIsolator] = None,
        lock_manager: Optional[LockManager] = None
    ):
        """
        Initialize the engine.

        Args:
            config: Framework configuration
            layout: Workspace directory layout
            runtime_provider: Returns the runtime of a toolchain; must return
                the same instance for the same toolchain
            sink: Destination of commits and task outcomes
            preparer: Populates canonical sources (registry packages cannot
                be populated without a fetcher)
            manifest_patcher: Patches registry package manifests
            mirror_sync: Refreshes mirrors before the run; without it,
                mirrors are used as they are
            isolator: Provider of working directories
            lock_manager: Lock file manager
        """
        self.config = config
        self.layout = layout
        self.runtime_provider = runtime_provider
        self.sink = sink
        self.preparer = preparer or SourcePreparer(layout)
        self.manifest_patcher = manifest_patcher
        self.mirror_sync = mirror_sync
        self.isolator = isolator or WorkDirIsolator(layout)
        self.lock_manager = lock_manager or LockManager(
            config, layout, self.isolator, runtime_provider
        )
        self.logger = logging.getLogger(__name__)
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop scheduling new work. Running tasks finish and are recorded."""
        self.logger.warning("[RUN] Cancellation requested")
        self._cancelled.set()

    def prepare_all_toolchains(self, experiment: Experiment) -> None:
        """
        Prepare the toolchains of ``experiment`` one after the other.

        Raises:
            ToolchainPrepareError: If a toolchain cannot be prepared
        """
        for toolchain in experiment.toolchains:
            self.logger.info(f"[PREPARE] Preparing toolchain {toolchain}")
            try:
                self.runtime_provider(toolchain).prepare()
            except ToolchainPrepareError:
                raise
            except FrameworkError as e:
                raise ToolchainPrepareError(
                    f"failed to prepare toolchain {toolchain}",
                    details={'experiment': experiment.name}
                ) from e

    def run(self, experiment: Experiment) -> RunSummary:
        """
        Run every pending task of ``experiment``.

        Returns:
            RunSummary of the outcomes recorded by this run

        Raises:
            ConfigError: If the experiment is invalid
            InfrastructureError: If the run cannot continue (toolchain
                preparation, filesystem or result sink failures)
            ShaCaptureError: If a mirror's commit cannot be resolved
        """
        experiment.validate()
        self._cancelled.clear()
        summary = RunSummary(experiment=experiment.name)

        self.logger.info(
            f"[RUN] Starting experiment {experiment.name} "
            f"({len(experiment.packages)} packages, "
            f"{' vs '.join(str(tc) for tc in experiment.toolchains)}, {experiment.mode.value})"
        )
        ensure_dir(self.layout.experiment_dir(experiment.name))
        self.prepare_all_toolchains(experiment)
        self._sync_mirrors(experiment)

        work = self._pending_work(experiment, summary)
        summary.total_tasks = sum(len(tcs) for _, tcs in work) + summary.already_completed

        with tqdm(
            total=summary.total_tasks - summary.already_completed,
            desc=experiment.name,
            unit="task",
            disable=not self.config.execution.show_progress,
        ) as progress:
            self._execute(experiment, work, summary, progress)

        summary.cancelled = self._cancelled.is_set()
        summary.end_time = time.time()
        self.logger.info(
            f"[RUN] Experiment {experiment.name} finished in {summary.duration:.2f}s: "
            f"{summary.counts}" + (" (cancelled)" if summary.cancelled else "")
        )
        return summary

    def _sync_mirrors(self, experiment: Experiment) -> None:
        if self.mirror_sync is None or not experiment.source_repo_packages():
            return

        if self.config.execution.fetch_mirrors:
            self.mirror_sync.fetch_repo_crates(experiment)

        # Repositories that were never mirrored fail later as tasks.
        mirrored = [
            p for p in experiment.source_repo_packages()
            if self.layout.mirror_dir(p).exists()
        ]
        self.mirror_sync.capture_shas(experiment, mirrored, self.sink)

    def _pending_work(
        self,
        experiment: Experiment,
        summary: RunSummary
    ) -> List[Tuple[Package, List[Toolchain]]]:
        completed: Set[Tuple[str, str]] = set()
        if self.config.execution.skip_completed:
            completed = self.sink.completed_tasks(experiment)
            if completed:
                self.logger.info(f"[RUN] Resuming: {len(completed)} tasks already recorded")

        work = []
        for package in experiment.packages:
            toolchains = [
                tc for tc in experiment.toolchains
                if (str(tc), package.id) not in completed
            ]
            summary.already_completed += len(experiment.toolchains) - len(toolchains)
            if toolchains:
                work.append((package, toolchains))
        return work

    def _execute(
        self,
        experiment: Experiment,
        work: List[Tuple[Package, List[Toolchain]]],
        summary: RunSummary,
        progress: tqdm
    ) -> None:
        workers = self.config.execution.worker_count
        max_in_flight = workers * 2
        queue = iter(work)
        in_flight: Dict[Future, Tuple[str, Package, List[Toolchain]]] = {}

        def record(toolchain: Toolchain, package: Package, outcome: TaskOutcome) -> None:
            self.sink.record_task_outcome(experiment, toolchain, package, outcome)
            summary.add(outcome)
            progress.update(1)
            log = self.logger.info if outcome.succeeded else self.logger.warning
            log(f"[TASK] {package} on {toolchain}: {outcome.status.value}")

        def fill(executor: ThreadPoolExecutor) -> None:
            while len(in_flight) < max_in_flight and not self._cancelled.is_set():
                item = next(queue, None)
                if item is None:
                    return
                package, toolchains = item
                if self.config.should_skip(package):
                    for toolchain in toolchains:
                        record(toolchain, package, TaskOutcome(
                            status=TaskStatus.SKIPPED,
                            error="skipped by configuration",
                        ))
                    continue
                future = executor.submit(self._prepare_package, experiment, package)
                in_flight[future] = ("prepare", package, toolchains)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            try:
                fill(executor)
                while in_flight:
                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in done:
                        kind, package, toolchains = in_flight.pop(future)
                        if future.cancelled():
                            continue

                        if kind == "prepare":
                            error = future.result()
                            if error is not None:
                                for toolchain in toolchains:
                                    record(toolchain, package, error)
                            elif not self._cancelled.is_set():
                                for toolchain in toolchains:
                                    task = executor.submit(
                                        self._run_task, experiment, toolchain, package
                                    )
                                    in_flight[task] = ("task", package, [toolchain])
                        else:
                            record(toolchains[0], package, future.result())

                    if self._cancelled.is_set():
                        for pending in in_flight:
                            pending.cancel()
                    else:
                        fill(executor)
            except BaseException as e:
                self._cancelled.set()
                for pending in in_flight:
                    pending.cancel()
                if isinstance(e, KeyboardInterrupt):
                    self.logger.warning(f"[RUN] Interrupted, waiting for running tasks of {experiment.name}")
                else:
                    self.logger.error(f"[RUN] Aborting experiment {experiment.name}: {e}")
                raise

    def _prepare_package(self, experiment: Experiment, package: Package) -> Optional[TaskOutcome]:
        """
        Populate, patch and lock ``package`` for every toolchain.

        Returns:
            None on success, otherwise the outcome to record for every task
            of the package
        """
        start = time.time()
        try:
            for toolchain in experiment.toolchains:
                source_dir = self.preparer.populate(experiment, toolchain, package)
                if self.manifest_patcher is not None and isinstance(package, RegistryPackage):
                    self._patch_manifest(source_dir, toolchain, package)

            if experiment.mode is not Mode.UNSTABLE_FEATURES:
                self.lock_manager.ensure_lockfiles(experiment, package)
        except InfrastructureError:
            raise
        except FrameworkError as e:
            self.logger.warning(f"[PREPARE] {package}: {e}")
            return TaskOutcome(
                status=TaskStatus.ERROR,
                error=str(e),
                duration=time.time() - start,
            )
        return None

    def _patch_manifest(self, source_dir, toolchain: Toolchain, package: RegistryPackage) -> None:
        try:
            self.manifest_patcher.patch(source_dir, package)
        except FrameworkError:
            raise
        except Exception as e:
            raise PatchError(
                f"failed to patch the manifest of {package}",
                details={'toolchain': str(toolchain), 'dir': str(source_dir)}
            ) from e

    def _run_task(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> TaskOutcome:
        start = time.time()
        quiet = self.config.is_quiet(package)

        if experiment.mode is Mode.UNSTABLE_FEATURES:
            return self._scan_features(experiment, toolchain, package, start)

        try:
            self.lock_manager.fetch_crate_deps(experiment, toolchain, package)
        except InfrastructureError:
            raise
        except FrameworkError as e:
            return TaskOutcome(
                status=TaskStatus.ERROR,
                output="" if quiet else getattr(e, 'output', ""),
                error=f"unable to fetch dependencies: {e}",
                duration=time.time() - start,
            )

        runtime = self.runtime_provider(toolchain)
        outputs = []
        with self.isolator.working_copy(experiment, toolchain, package) as work_dir:
            for args, fail_status in self._steps(experiment, package):
                try:
                    result = runtime.run_build_tool(
                        experiment,
                        work_dir,
                        args,
                        LockPolicy.LOCKED,
                        allow_network=False,
                        capture_output=not quiet,
                    )
                except InfrastructureError:
                    raise
                except BuildToolError as e:
                    outputs.append(e.output)
                    return TaskOutcome(
                        status=fail_status,
                        output="" if quiet else "\n".join(o for o in outputs if o),
                        error=str(e),
                        duration=time.time() - start,
                    )
                except FrameworkError as e:
                    return TaskOutcome(
                        status=TaskStatus.ERROR,
                        error=str(e),
                        duration=time.time() - start,
                    )
                outputs.append(result.combined)

        return TaskOutcome(
            status=TaskStatus.SUCCESS,
            output="" if quiet else "\n".join(o for o in outputs if o),
            duration=time.time() - start,
        )

    def _steps(self, experiment: Experiment, package: Package) -> List[Tuple[List[str], TaskStatus]]:
        """Build-tool invocations of a task and the status each failure maps to."""
        if experiment.mode is Mode.CHECK_ONLY:
            return [(CHECK_ARGS, TaskStatus.BUILD_FAIL)]

        steps = [(BUILD_ARGS, TaskStatus.BUILD_FAIL)]
        if experiment.mode is Mode.BUILD_AND_TEST and not self.config.should_skip_tests(package):
            steps.append((TEST_ARGS, TaskStatus.TEST_FAIL))
        return steps

    def _scan_features(
        self,
        experiment: Experiment,
        toolchain: Toolchain,
        package: Package,
        start: float
    ) -> TaskOutcome:
        features = self.isolator.with_working_copy(
            experiment, toolchain, package, False, find_unstable_features
        )
        return TaskOutcome(
            status=TaskStatus.SUCCESS,
            output="\n".join(features),
            duration=time.time() - start,
            metadata={'features': features},
        )
