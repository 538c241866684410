"""Shared fixtures and in-memory fakes for the external collaborators.

The fakes stand in for the toolchain, the registry, version control and the
result sink so the orchestration can be tested without network access or an
installed toolchain.
"""

import random
import threading
from pathlib import Path

import pytest

from ecosystem_matrix.config import get_minimal_config
from ecosystem_matrix.core import (
    BuildOutput,
    BuildToolError,
    CorpusSource,
    ManifestPatcher,
    RegistryFetcher,
    ResultSink,
    RuntimeRegistry,
    ShaCaptureError,
    MirrorFetchError,
    SourceFetchError,
    TaskStatus,
    Toolchain,
    ToolchainPrepareError,
    ToolchainRuntime,
    VersionControlMirror,
    RegistryPackage,
    SourceRepoPackage,
)
from ecosystem_matrix.corpus import CorpusSelector
from ecosystem_matrix.experiment import ExperimentStore
from ecosystem_matrix.utils import WorkspaceLayout


def manifest_name(directory: Path) -> str:
    """Read the package name written by FakeFetcher / FakeMirror."""
    for line in (Path(directory) / "Cargo.toml").read_text().splitlines():
        if line.startswith("name = "):
            return line.split("=", 1)[1].strip().strip('"')
    raise AssertionError(f"no package name in {directory}")


class StaticCorpusSource(CorpusSource):
    def __init__(self, packages, ranked=None):
        self.packages = sorted(packages)
        self.ranked = list(ranked) if ranked is not None else list(self.packages)

    def read_all_packages(self):
        return list(self.packages)

    def read_popularity_ranked(self):
        return list(self.ranked)


class FakeRuntime(ToolchainRuntime):
    """
    Build tool double.

    ``failures`` maps a package name to the build-tool commands that fail for
    it (e.g. ``{'B': {'build'}}``). ``generate-lockfile`` writes a Cargo.lock.
    """

    def __init__(self, toolchain, failures=None, fail_prepare=False):
        super().__init__(toolchain)
        self.failures = failures or {}
        self.fail_prepare = fail_prepare
        self.prepared = 0
        self.calls = []
        self._lock = threading.Lock()

    def prepare(self):
        if self.fail_prepare:
            raise ToolchainPrepareError(f"cannot install {self.toolchain}")
        self.prepared += 1

    def run_build_tool(self, experiment, working_dir, args, lock_policy, allow_network, capture_output):
        command = args[0]
        name = manifest_name(working_dir)
        with self._lock:
            self.calls.append({
                'package': name,
                'command': command,
                'args': list(args),
                'working_dir': Path(working_dir),
                'lock_policy': lock_policy,
                'allow_network': allow_network,
                'capture_output': capture_output,
            })

        if command in self.failures.get(name, ()):
            raise BuildToolError(f"{command} failed for {name}", output=f"error: {command} of {name} failed")

        if command == "generate-lockfile":
            (Path(working_dir) / "Cargo.lock").write_text(f"# lock of {name} by {self.toolchain}\n")

        return BuildOutput(returncode=0, stdout=f"{command} {name} ok" if capture_output else "")

    def commands_for(self, name):
        return [call['command'] for call in self.calls if call['package'] == name]


class FakeFetcher(RegistryFetcher):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.fetched = []

    def fetch(self, package, dest_dir):
        if package.name in self.failing:
            raise SourceFetchError(f"cannot download {package}")
        self.fetched.append(package)
        dest_dir = Path(dest_dir)
        (dest_dir / "src").mkdir(parents=True, exist_ok=True)
        (dest_dir / "Cargo.toml").write_text(
            f'[package]\nname = "{package.name}"\nversion = "{package.version}"\n'
        )
        (dest_dir / "src" / "lib.rs").write_text("pub fn answer() -> u32 { 42 }\n")


class FakePatcher(ManifestPatcher):
    def __init__(self):
        self.patched = []

    def patch(self, source_dir, package):
        self.patched.append((Path(source_dir), package))


class FakeMirror(VersionControlMirror):
    def __init__(self, failing_urls=(), bogus_dirs=()):
        self.failing_urls = set(failing_urls)
        self.bogus_dirs = set(bogus_dirs)
        self.fetched = []

    def shallow_clone_or_pull(self, url, local_dir):
        if url in self.failing_urls:
            raise MirrorFetchError(f"cannot fetch {url}")
        self.fetched.append(url)
        local_dir = Path(local_dir)
        (local_dir / ".git").mkdir(parents=True, exist_ok=True)
        name = url.rstrip('/').rsplit('/', 1)[-1]
        (local_dir / "Cargo.toml").write_text(f'[package]\nname = "{name}"\nversion = "0.1.0"\n')

    def resolve_head(self, local_dir):
        if Path(local_dir).name in self.bogus_dirs:
            raise ShaCaptureError(f"bogus output from git rev-parse for {local_dir}")
        return "a" * 40


class MemoryResultSink(ResultSink):
    def __init__(self):
        self.shas = {}
        self.outcomes = {}
        self.records = []

    def record_sha(self, experiment, package, sha):
        self.shas[package.slug] = sha

    def record_task_outcome(self, experiment, toolchain, package, outcome):
        self.records.append((str(toolchain), package.id, outcome))
        self.outcomes[(str(toolchain), package.id)] = outcome

    def completed_tasks(self, experiment):
        return {key for key, outcome in self.outcomes.items() if outcome.status is not TaskStatus.ERROR}

    def status_of(self, toolchain, package):
        return self.outcomes[(str(toolchain), package.id)].status


@pytest.fixture
def layout(tmp_path):
    return WorkspaceLayout(tmp_path / "work")


@pytest.fixture
def config(tmp_path):
    return get_minimal_config(str(tmp_path / "work"))


@pytest.fixture
def toolchains():
    return [Toolchain.parse("stable"), Toolchain.parse("beta")]


@pytest.fixture
def corpus():
    return StaticCorpusSource([
        RegistryPackage("A", "1.0.0"),
        RegistryPackage("B", "2.0.0"),
        RegistryPackage("C", "0.3.1"),
        SourceRepoPackage("rust-lang", "hello"),
    ])


@pytest.fixture
def store(layout, corpus):
    return ExperimentStore(layout, CorpusSelector(corpus, rng=random.Random(7)))


@pytest.fixture
def runtimes():
    """Registry of FakeRuntime instances; tests may preconfigure ``factory_kwargs``."""
    factory_kwargs = {}
    registry = RuntimeRegistry(lambda tc: FakeRuntime(tc, **factory_kwargs.get(str(tc), {})))
    registry.factory_kwargs = factory_kwargs
    return registry


@pytest.fixture
def sink():
    return MemoryResultSink()
