"""
Utilities for the ecosystem regression matrix framework.

This module provides utility functions for file operations, git operations,
directory layout and logging.
"""

from .file_utils import (
    read_file,
    write_file,
    ensure_dir,
    copy_dir,
    remove_dir_all,
)
from .git_utils import (
    run_git_command,
    clone_repository,
    update_shallow_clone,
    fetch_commit,
    checkout_commit,
    get_current_commit,
    is_git_repository,
    GitMirror,
)
from .layout import WorkspaceLayout
from .logging_utils import configure_logging, report_error

__all__ = [
    # File utilities
    "read_file",
    "write_file",
    "ensure_dir",
    "copy_dir",
    "remove_dir_all",
    # Git utilities
    "run_git_command",
    "clone_repository",
    "update_shallow_clone",
    "fetch_commit",
    "checkout_commit",
    "get_current_commit",
    "is_git_repository",
    "GitMirror",
    # Layout
    "WorkspaceLayout",
    # Logging
    "configure_logging",
    "report_error",
]
