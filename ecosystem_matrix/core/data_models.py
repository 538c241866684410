"""
Data models for the ecosystem regression matrix framework.

This module defines the experiment record and everything it is built from:
packages (registry or source-repo), toolchains, execution modes and lint
policies, as well as the per-task outcome reported to result sinks.
"""

import functools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .exceptions import ConfigError


class Mode(Enum):
    """What the build tool is asked to do for every task."""
    BUILD_AND_TEST = "build-and-test"
    BUILD_ONLY = "build-only"
    CHECK_ONLY = "check-only"
    UNSTABLE_FEATURES = "unstable-features"


class CapLints(Enum):
    """How strictly compiler lints are treated during the build."""
    ALLOW = "allow"
    WARN = "warn"
    DENY = "deny"
    FORBID = "forbid"


class CorpusSelection(Enum):
    """How the package list of a new experiment is chosen."""
    FULL = "full"
    DEMO = "demo"
    SMALL_RANDOM = "small-random"
    TOP_100 = "top-100"


class TaskStatus(Enum):
    """Outcome status of a single (toolchain, package) task."""
    SUCCESS = "success"
    BUILD_FAIL = "build-fail"
    TEST_FAIL = "test-fail"
    ERROR = "error"
    SKIPPED = "skipped"


class LockPolicy(Enum):
    """
    Whether a build-tool run may touch the toolchain's shared dependency cache.

    UNLOCKED runs may write to the cache and are serialized per toolchain;
    LOCKED runs only read from it and may run concurrently.
    """
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@functools.total_ordering
class Package:
    """
    Common behaviour of the two package kinds.

    Packages of different kinds are totally ordered: registry packages sort
    before source-repo packages, then by their identifying fields.
    """

    def sort_key(self) -> Tuple:
        raise NotImplementedError

    @property
    def id(self) -> str:
        """Path-friendly identifier, unique across kinds."""
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Package):
            return NotImplemented
        return self.sort_key() < other.sort_key()


@dataclass(frozen=True)
class RegistryPackage(Package):
    """A package published on the package registry."""
    name: str
    version: str

    def sort_key(self) -> Tuple:
        return (0, self.name, self.version, "")

    @property
    def id(self) -> str:
        return f"reg/{self.name}/{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': 'registry', 'name': self.name, 'version': self.version}

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


@dataclass(frozen=True)
class SourceRepoPackage(Package):
    """
    A package built straight from a hosted source repository.

    Attributes:
        org: Owner of the repository
        name: Repository name
        sha: Optional pinned commit to build instead of the mirror's HEAD
    """
    org: str
    name: str
    sha: Optional[str] = None

    URL_BASE: ClassVar[str] = "https://github.com"

    def sort_key(self) -> Tuple:
        return (1, self.org, self.name, self.sha or "")

    @property
    def id(self) -> str:
        base = f"gh/{self.org}/{self.name}"
        return f"{base}@{self.sha}" if self.sha else base

    @property
    def slug(self) -> str:
        return f"{self.org}/{self.name}"

    @property
    def url(self) -> str:
        return f"{self.URL_BASE}/{self.org}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': 'github', 'org': self.org, 'name': self.name, 'sha': self.sha}

    def __str__(self) -> str:
        return self.slug


def package_from_dict(data: Dict[str, Any]) -> Package:
    """
    Create a package from its serialized form.

    Args:
        data: Dictionary produced by ``Package.to_dict``

    Returns:
        RegistryPackage or SourceRepoPackage

    Raises:
        ValueError: If the package kind is unknown
        KeyError: If a required field is missing
    """
    kind = data['kind']
    if kind == 'registry':
        return RegistryPackage(name=data['name'], version=data['version'])
    if kind == 'github':
        return SourceRepoPackage(org=data['org'], name=data['name'], sha=data.get('sha'))
    raise ValueError(f"unknown package kind: {kind!r}")


@dataclass(frozen=True)
class Toolchain:
    """
    A toolchain under comparison.

    The textual form is the toolchain name, optionally followed by
    ``+rustflags`` when the toolchain honors the experiment's flag override
    (e.g. ``stable``, ``beta+rustflags``, ``nightly-2018-01-01``).
    """
    name: str
    flag_aware: bool = False

    FLAGS_SUFFIX: ClassVar[str] = "+rustflags"

    @classmethod
    def parse(cls, spec: str) -> 'Toolchain':
        """
        Parse a toolchain from its textual form.

        Raises:
            ConfigError: If the toolchain name is empty
        """
        spec = spec.strip()
        flag_aware = spec.endswith(cls.FLAGS_SUFFIX)
        name = spec[:-len(cls.FLAGS_SUFFIX)] if flag_aware else spec
        if not name:
            raise ConfigError("toolchain name cannot be empty", details={'spec': spec})
        return cls(name=name, flag_aware=flag_aware)

    def __str__(self) -> str:
        return self.name + (self.FLAGS_SUFFIX if self.flag_aware else "")


_EXPERIMENT_NAME = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')


def validate_experiment_name(name: str) -> None:
    """
    Check that ``name`` is usable as a single directory name.

    Raises:
        ConfigError: If the name is empty or could escape its parent directory
    """
    if not isinstance(name, str) or not _EXPERIMENT_NAME.match(name):
        raise ConfigError(
            "experiment name must be non-empty, start with a letter or digit "
            "and contain only letters, digits, '.', '_' or '-'",
            details={'name': name}
        )


@dataclass
class Experiment:
    """
    A named build/test matrix: packages x two toolchains x mode.

    Attributes:
        name: Unique experiment name, also the name of its directory
        packages: Ordered package list, fixed at definition time
        toolchains: Exactly two distinct toolchains
        mode: What each task does
        cap_lints: Lint policy applied to every build
        rustflags: Flag override, required iff a toolchain is flag-aware
    """
    name: str
    packages: List[Package]
    toolchains: List[Toolchain]
    mode: Mode = Mode.BUILD_AND_TEST
    cap_lints: CapLints = CapLints.FORBID
    rustflags: Optional[str] = None

    def validate(self) -> None:
        """
        Check the experiment invariants.

        Raises:
            ConfigError: Describing the first violated rule
        """
        validate_experiment_name(self.name)

        if len(self.toolchains) != 2:
            raise ConfigError(
                "an experiment needs exactly two toolchains",
                details={'toolchains': [str(tc) for tc in self.toolchains]}
            )

        first, second = self.toolchains
        if first == second:
            raise ConfigError("reusing the same toolchain isn't supported")

        uses_flags = first.flag_aware or second.flag_aware
        if self.rustflags is not None and not uses_flags:
            raise ConfigError("rustflags are present but no toolchain is using them")

        if self.rustflags is None and uses_flags:
            raise ConfigError("a toolchain is enabling rustflags but none are set")

    def source_repo_packages(self) -> List[SourceRepoPackage]:
        return [p for p in self.packages if isinstance(p, SourceRepoPackage)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert experiment to dictionary for serialization."""
        return {
            'name': self.name,
            'packages': [p.to_dict() for p in self.packages],
            'toolchains': [str(tc) for tc in self.toolchains],
            'mode': self.mode.value,
            'cap_lints': self.cap_lints.value,
            'rustflags': self.rustflags,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Experiment':
        """
        Create an experiment from its serialized form.

        Raises:
            KeyError, ValueError, TypeError: If the data is malformed
        """
        return cls(
            name=data['name'],
            packages=[package_from_dict(p) for p in data['packages']],
            toolchains=[Toolchain.parse(tc) for tc in data['toolchains']],
            mode=Mode(data['mode']),
            cap_lints=CapLints(data['cap_lints']),
            rustflags=data.get('rustflags'),
        )


@dataclass
class BuildOutput:
    """Captured result of one build-tool invocation."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def combined(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class TaskOutcome:
    """
    Outcome of one (toolchain, package) task.

    Attributes:
        status: Final task status
        output: Captured build-tool output (empty when quiet)
        error: Error message for failed or errored tasks
        duration: Wall-clock seconds spent on the task
        metadata: Extra structured information (e.g. detected features)
    """
    status: TaskStatus
    output: str = ""
    error: Optional[str] = None
    duration: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'error': self.error,
            'duration': self.duration,
            'metadata': self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TaskOutcome':
        return cls(
            status=TaskStatus(data['status']),
            output=data.get('output', ''),
            error=data.get('error'),
            duration=data.get('duration', 0.0),
            metadata=data.get('metadata', {}),
        )
