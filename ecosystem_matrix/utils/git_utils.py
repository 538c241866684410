"""
Git utilities for the ecosystem regression matrix framework.

This module provides utility functions for git operations such as
shallow cloning, updating mirrors, checking out commits and resolving the
current commit, plus the GitMirror implementation of VersionControlMirror.
"""

import os
import re
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import logging

from ..core.exceptions import MirrorFetchError, RepositoryError, ShaCaptureError
from ..core.interfaces import VersionControlMirror

logger = logging.getLogger(__name__)

# SHA-1 or SHA-256 object names
_SHA_PATTERN = re.compile(r'^[0-9a-f]{40}(?:[0-9a-f]{24})?$')


def _git_env() -> Dict[str, str]:
    """Environment for non-interactive git invocations."""
    env = dict(os.environ)
    env['GIT_TERMINAL_PROMPT'] = '0'
    return env


def run_git_command(
    args: List[str],
    cwd: Optional[Union[str, Path]] = None,
    check: bool = True,
    timeout: Optional[float] = None
) -> Tuple[int, str, str]:
    """
    Run a git command.

    Args:
        args: Git command arguments
        cwd: Working directory
        check: Whether to raise an error on non-zero exit
        timeout: Timeout in seconds

    Returns:
        Tuple of (returncode, stdout, stderr)

    Raises:
        RepositoryError: If the command fails and check=True, times out,
            or git cannot be started
    """
    cmd = ['git'] + args

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
            env=_git_env(),
        )
    except subprocess.TimeoutExpired as e:
        raise RepositoryError(
            f"Git command timed out after {timeout}s",
            details={
                'command': ' '.join(cmd),
                'timeout': timeout,
            }
        ) from e
    except OSError as e:
        raise RepositoryError(
            f"Failed to run git command: {e}",
            details={'command': ' '.join(cmd)}
        ) from e

    if check and result.returncode != 0:
        raise RepositoryError(
            f"Git command failed: {' '.join(cmd)}",
            details={
                'cwd': str(cwd),
                'returncode': result.returncode,
                'stderr': result.stderr.strip(),
            }
        )

    return result.returncode, result.stdout, result.stderr


def clone_repository(
    repo_url: str,
    target_path: Union[str, Path],
    depth: Optional[int] = None,
    timeout: float = 300.0
) -> Path:
    """
    Clone a git repository.

    Args:
        repo_url: URL of the repository
        target_path: Path where to clone
        depth: Clone depth (None for full clone)
        timeout: Timeout in seconds

    Returns:
        Path to the cloned repository

    Raises:
        RepositoryError: If cloning fails
    """
    target = Path(target_path)

    if target.exists():
        raise RepositoryError(
            f"Target path already exists: {target}",
            details={'target': str(target)}
        )

    args = ['clone']

    if depth:
        args.extend(['--depth', str(depth)])

    args.extend([repo_url, str(target)])

    logger.info(f"Cloning repository: {repo_url}")
    target.parent.mkdir(parents=True, exist_ok=True)
    run_git_command(args, timeout=timeout)

    logger.info(f"Cloned to: {target}")
    return target


def update_shallow_clone(repo_path: Union[str, Path], timeout: float = 300.0) -> None:
    """
    Move a shallow clone to the latest commit of its default branch.

    Args:
        repo_path: Path to the existing clone
        timeout: Timeout in seconds for the fetch

    Raises:
        RepositoryError: If fetching or resetting fails
    """
    logger.info(f"Updating repository: {repo_path}")
    run_git_command(['fetch', '--depth', '1', 'origin'], cwd=repo_path, timeout=timeout)
    run_git_command(['reset', '--hard', 'FETCH_HEAD'], cwd=repo_path)


def fetch_commit(
    repo_path: Union[str, Path],
    commit_hash: str,
    timeout: float = 300.0
) -> None:
    """
    Fetch a single commit into a shallow clone.

    Raises:
        RepositoryError: If the commit cannot be fetched
    """
    logger.info(f"Fetching commit {commit_hash} into {repo_path}")
    run_git_command(
        ['fetch', '--depth', '1', 'origin', commit_hash],
        cwd=repo_path,
        timeout=timeout
    )


def checkout_commit(
    repo_path: Union[str, Path],
    commit_hash: str,
    force: bool = False
) -> None:
    """
    Checkout a specific commit.

    Args:
        repo_path: Path to the repository
        commit_hash: Commit hash to checkout
        force: Whether to force checkout

    Raises:
        RepositoryError: If checkout fails
    """
    args = ['checkout']

    if force:
        args.append('--force')

    args.append(commit_hash)

    logger.info(f"Checking out commit: {commit_hash}")
    run_git_command(args, cwd=repo_path)


def get_current_commit(repo_path: Union[str, Path]) -> str:
    """
    Get the current commit hash.

    Args:
        repo_path: Path to the repository

    Returns:
        Current commit hash, or an empty string if git printed nothing
    """
    _, stdout, _ = run_git_command(
        ['rev-parse', 'HEAD'],
        cwd=repo_path
    )
    lines = stdout.splitlines()
    return lines[0].strip() if lines else ""


def is_git_repository(path: Union[str, Path]) -> bool:
    """
    Check if a path is a git repository.

    Args:
        path: Path to check

    Returns:
        True if the path is a git repository
    """
    return (Path(path) / '.git').exists()


class GitMirror(VersionControlMirror):
    """
    Mirrors of source repositories maintained with the git command line.

    Example:
        mirror = GitMirror()
        mirror.shallow_clone_or_pull(package.url, layout.mirror_dir(package))
        sha = mirror.resolve_head(layout.mirror_dir(package))
    """

    def __init__(self, timeout: float = 300.0):
        """
        Initialize the mirror.

        Args:
            timeout: Timeout in seconds for network operations
        """
        self.timeout = timeout

    def shallow_clone_or_pull(self, url: str, local_dir: Path) -> None:
        try:
            if is_git_repository(local_dir):
                update_shallow_clone(local_dir, timeout=self.timeout)
            else:
                clone_repository(url, local_dir, depth=1, timeout=self.timeout)
        except RepositoryError as e:
            raise MirrorFetchError(
                f"Failed to update mirror of {url}",
                details={'dir': str(local_dir)}
            ) from e

    def resolve_head(self, local_dir: Path) -> str:
        try:
            sha = get_current_commit(local_dir)
        except RepositoryError as e:
            raise ShaCaptureError(
                f"unable to capture sha for {local_dir}: {e}",
                details={'dir': str(local_dir)}
            ) from e

        if not _SHA_PATTERN.match(sha):
            raise ShaCaptureError(
                f"bogus output from git rev-parse for {local_dir}",
                details={'dir': str(local_dir), 'output': sha}
            )
        return sha
