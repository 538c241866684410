"""
Exception hierarchy for the ecosystem regression matrix framework.

All errors raised by the framework derive from FrameworkError and carry an
optional ``details`` dictionary with structured context (paths, package
identifiers, command lines) that is rendered into the error message.

Errors fall into two families:

- Task-level errors (build tool, lock file, patch, source fetch) are caught by
  the matrix engine and converted into a recorded task outcome.
- InfrastructureError subclasses (filesystem, persistence, toolchain
  preparation, result sink) abort the enclosing operation.
"""

from typing import Any, Dict, Optional


class FrameworkError(Exception):
    """
    Base class for all framework errors.

    Attributes:
        message: Human readable description of the failure
        details: Structured context about the failure
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        rendered = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({rendered})"


class ConfigError(FrameworkError):
    """Invalid experiment definition or framework configuration."""


class NotFoundError(FrameworkError):
    """A required experiment, list or file does not exist."""


class CorruptStateError(FrameworkError):
    """Persisted state exists but cannot be deserialized."""


class CorpusConsistencyError(FrameworkError):
    """The curated demo list and the live corpus have diverged."""


class RepositoryError(FrameworkError):
    """A version-control command failed."""


class MirrorFetchError(RepositoryError):
    """Cloning or updating a mirror failed. Reported and skipped."""


class ShaCaptureError(FrameworkError):
    """The commit of a mirror could not be resolved."""


class BuildToolError(FrameworkError):
    """The build tool exited unsuccessfully or could not be run."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        output: str = "",
    ):
        super().__init__(message, details)
        self.output = output


class LockfileError(FrameworkError):
    """Dependency resolution for a package failed."""


class PatchError(FrameworkError):
    """Applying manifest compatibility patches failed."""


class SourceFetchError(FrameworkError):
    """Populating the canonical source of a package failed."""


class InfrastructureError(FrameworkError):
    """Base class for errors that abort the whole operation."""


class StorageError(InfrastructureError):
    """Persisting the experiment record failed."""


class FilesystemError(InfrastructureError):
    """Copying or removing a directory tree failed."""


class ToolchainPrepareError(InfrastructureError):
    """A toolchain could not be installed or built."""


class ResultSinkError(InfrastructureError):
    """Writing to the result sink failed."""
