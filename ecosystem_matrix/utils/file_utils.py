"""
File utilities for the ecosystem regression matrix framework.

This module provides utility functions for file operations such as
reading, writing, and copying or removing whole directory trees.
"""

import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Callable, Optional, Union
import logging

from ..core.exceptions import FilesystemError

logger = logging.getLogger(__name__)


def read_file(
    path: Union[str, Path],
    encoding: str = "utf-8",
    errors: str = "replace"
) -> str:
    """
    Read the contents of a file.

    Args:
        path: Path to the file
        encoding: File encoding
        errors: How to handle encoding errors

    Returns:
        File contents as string

    Raises:
        FileNotFoundError: If the file does not exist
        IOError: If the file cannot be read
    """
    file_path = Path(path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if not file_path.is_file():
        raise IOError(f"Path is not a file: {path}")

    try:
        with open(file_path, 'r', encoding=encoding, errors=errors) as f:
            return f.read()
    except OSError as e:
        raise IOError(f"Failed to read file {path}: {e}") from e


def write_file(
    path: Union[str, Path],
    content: str,
    encoding: str = "utf-8",
    mkdir: bool = True
) -> None:
    """
    Atomically write content to a file.

    The content is written to a temporary file in the same directory, synced
    and then renamed over ``path``, so readers never observe a partial file.

    Args:
        path: Path to the file
        content: Content to write
        encoding: File encoding
        mkdir: Whether to create parent directories

    Raises:
        IOError: If the file cannot be written
    """
    file_path = Path(path)

    if mkdir:
        file_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        fd, tmp_path = tempfile.mkstemp(prefix=f".{file_path.name}.", dir=file_path.parent)
        try:
            with os.fdopen(fd, 'w', encoding=encoding) as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, file_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote file: {path}")
    except OSError as e:
        raise IOError(f"Failed to write file {path}: {e}") from e


def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory

    Returns:
        Path object for the directory

    Raises:
        FilesystemError: If the directory cannot be created
    """
    dir_path = Path(path)
    try:
        dir_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(
            f"Failed to create directory: {e}",
            details={'path': str(dir_path)}
        ) from e
    return dir_path


def copy_dir(
    src: Union[str, Path],
    dest: Union[str, Path],
    ignore: Optional[Callable] = None
) -> Path:
    """
    Recursively copy a directory tree, preserving symlinks.

    ``dest`` may already exist as an empty directory.

    Args:
        src: Source directory
        dest: Destination directory
        ignore: Optional ``shutil.copytree`` ignore callable

    Returns:
        Path to the destination

    Raises:
        FilesystemError: If the source is missing or the copy fails
    """
    src_path = Path(src)
    dest_path = Path(dest)

    if not src_path.is_dir():
        raise FilesystemError(
            "Source directory does not exist",
            details={'src': str(src_path)}
        )

    logger.debug(f"Copying {src_path} to {dest_path}")
    try:
        shutil.copytree(src_path, dest_path, symlinks=True, ignore=ignore, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        raise FilesystemError(
            f"Failed to copy directory: {e}",
            details={'src': str(src_path), 'dest': str(dest_path)}
        ) from e

    return dest_path


def remove_dir_all(path: Union[str, Path]) -> None:
    """
    Remove a directory tree. Missing directories are ignored.

    Read-only files (e.g. git pack files) are made writable and retried.

    Args:
        path: Directory to remove

    Raises:
        FilesystemError: If the tree cannot be removed
    """
    dir_path = Path(path)
    if not dir_path.exists():
        return

    def retry_writable(func, failed_path, _exc):
        os.chmod(failed_path, 0o700)
        func(failed_path)

    if sys.version_info >= (3, 12):
        handler = {'onexc': retry_writable}
    else:
        handler = {'onerror': retry_writable}

    try:
        shutil.rmtree(dir_path, **handler)
    except OSError as e:
        raise FilesystemError(
            f"Failed to remove directory: {e}",
            details={'path': str(dir_path)}
        ) from e
    logger.debug(f"Removed directory: {dir_path}")
