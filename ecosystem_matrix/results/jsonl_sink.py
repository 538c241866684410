"""
Result sink writing JSON lines files.

Per experiment, under ``<results_dir>/<experiment>/``:

- ``shas.jsonl``: the commit every source-repo package was built from
- ``results.jsonl``: one line per task outcome
- ``logs/<toolchain>/<package id>.log``: captured build-tool output

Every record is flushed and synced before the write returns, so recorded
outcomes survive an interrupted run.
"""

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Set, Tuple, Union
import logging

from ..core.data_models import (
    Experiment,
    Package,
    SourceRepoPackage,
    TaskOutcome,
    TaskStatus,
    Toolchain,
    validate_experiment_name,
)
from ..core.exceptions import ResultSinkError
from ..core.interfaces import ResultSink
from ..utils.file_utils import read_file, write_file

logger = logging.getLogger(__name__)

TaskKey = Tuple[str, str]


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class JsonlResultSink(ResultSink):
    """
    Thread-safe JSONL result sink.

    Example:
        sink = JsonlResultSink(layout.results_dir)
        sink.record_task_outcome(experiment, toolchain, package, outcome)
        outcomes = sink.load_outcomes(experiment)
    """

    SHAS_FILE = "shas.jsonl"
    RESULTS_FILE = "results.jsonl"
    LOGS_DIR = "logs"

    def __init__(self, results_dir: Union[str, Path]):
        """
        Initialize the sink.

        Args:
            results_dir: Root directory; each experiment gets a subdirectory
        """
        self.results_dir = Path(results_dir)
        self._lock = threading.Lock()

    def experiment_dir(self, experiment: Experiment) -> Path:
        validate_experiment_name(experiment.name)
        return self.results_dir / experiment.name

    def log_path(self, experiment: Experiment, toolchain: Toolchain, package: Package) -> Path:
        return self.experiment_dir(experiment) / self.LOGS_DIR / str(toolchain) / f"{package.id}.log"

    def record_sha(self, experiment: Experiment, package: SourceRepoPackage, sha: str) -> None:
        self._append(experiment, self.SHAS_FILE, {
            'experiment': experiment.name,
            'repo': package.slug,
            'sha': sha,
            'timestamp': _timestamp(),
        })

    def record_task_outcome(
        self,
        experiment: Experiment,
        toolchain: Toolchain,
        package: Package,
        outcome: TaskOutcome
    ) -> None:
        log_file = None
        if outcome.output:
            path = self.log_path(experiment, toolchain, package)
            try:
                write_file(path, outcome.output)
            except IOError as e:
                raise ResultSinkError(
                    f"failed to write log of {package} ({toolchain})",
                    details={'path': str(path)}
                ) from e
            log_file = str(path.relative_to(self.experiment_dir(experiment)))

        record = {
            'experiment': experiment.name,
            'toolchain': str(toolchain),
            'package': package.to_dict(),
            'package_id': package.id,
            'log': log_file,
            'timestamp': _timestamp(),
        }
        record.update(outcome.to_dict())
        self._append(experiment, self.RESULTS_FILE, record)

    def load_shas(self, experiment: Experiment) -> Dict[str, str]:
        """Return the recorded commit of every source-repo package."""
        return {entry['repo']: entry['sha'] for entry in self._read(experiment, self.SHAS_FILE)}

    def load_outcomes(self, experiment: Experiment) -> Dict[TaskKey, TaskOutcome]:
        """
        Return the latest outcome of every recorded task.

        Returns:
            Mapping of ``(toolchain, package id)`` to the outcome, with the
            captured output restored from the log file
        """
        outcomes = {}
        base = self.experiment_dir(experiment)
        for entry in self._read(experiment, self.RESULTS_FILE):
            outcome = TaskOutcome.from_dict(entry)
            if entry.get('log'):
                try:
                    outcome.output = read_file(base / entry['log'])
                except (FileNotFoundError, IOError):
                    logger.warning(f"Missing log file {entry['log']}")
            outcomes[(entry['toolchain'], entry['package_id'])] = outcome
        return outcomes

    def completed_tasks(self, experiment: Experiment) -> Set[TaskKey]:
        """Tasks with a final outcome. Errored tasks are retried."""
        return {
            key for key, outcome in self.load_outcomes(experiment).items()
            if outcome.status is not TaskStatus.ERROR
        }

    def _append(self, experiment: Experiment, file_name: str, record: Dict[str, Any]) -> None:
        path = self.experiment_dir(experiment) / file_name
        line = json.dumps(record) + "\n"
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(path, 'a', encoding='utf-8') as f:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise ResultSinkError(
                    f"failed to write {file_name}: {e}",
                    details={'path': str(path)}
                ) from e

    def _read(self, experiment: Experiment, file_name: str):
        path = self.experiment_dir(experiment) / file_name
        if not path.exists():
            return []

        entries = []
        for line in read_file(path).splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                # A crash can leave a truncated last line.
                logger.warning(f"Skipping malformed line in {path}")
        return entries
