"""
Registry package download and extraction.
"""

import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Optional, Union
from urllib.error import URLError
from urllib.request import urlopen
import logging

from ..core.data_models import RegistryPackage
from ..core.exceptions import SourceFetchError
from ..core.interfaces import RegistryFetcher
from ..utils.file_utils import copy_dir, ensure_dir, remove_dir_all

logger = logging.getLogger(__name__)


class HttpRegistryFetcher(RegistryFetcher):
    """
    Fetches ``.crate`` archives over HTTP and extracts them.

    Archives are cached, so each package version is downloaded at most once
    per workspace. Archives contain a single ``<name>-<version>/`` directory
    whose contents become the package source.

    Example:
        fetcher = HttpRegistryFetcher(layout.registry_cache_dir)
        fetcher.fetch(RegistryPackage('lazy_static', '1.4.0'), source_dir)
    """

    DEFAULT_BASE_URL = "https://static.crates.io/crates"

    def __init__(
        self,
        cache_dir: Union[str, Path],
        base_url: Optional[str] = None,
        timeout: float = 60.0
    ):
        """
        Initialize the fetcher.

        Args:
            cache_dir: Directory caching downloaded archives
            base_url: Base URL of the archive download endpoint
            timeout: Socket timeout of a download, in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout

    def archive_url(self, package: RegistryPackage) -> str:
        return f"{self.base_url}/{package.name}/{package}.crate"

    def archive_path(self, package: RegistryPackage) -> Path:
        return self.cache_dir / package.name / f"{package}.crate"

    def fetch(self, package: RegistryPackage, dest_dir: Path) -> None:
        archive = self._download(package)
        self._extract(package, archive, Path(dest_dir))

    def _download(self, package: RegistryPackage) -> Path:
        archive = self.archive_path(package)
        if archive.exists():
            logger.debug(f"Using cached archive {archive}")
            return archive

        ensure_dir(archive.parent)
        url = self.archive_url(package)
        partial = archive.with_name(archive.name + ".part")
        logger.info(f"Downloading {url}")
        try:
            with urlopen(url, timeout=self.timeout) as response, open(partial, 'wb') as f:
                shutil.copyfileobj(response, f)
            os.replace(partial, archive)
        except (URLError, OSError) as e:
            partial.unlink(missing_ok=True)
            raise SourceFetchError(
                f"failed to download {package}: {e}",
                details={'url': url}
            ) from e
        return archive

    def _extract(self, package: RegistryPackage, archive: Path, dest_dir: Path) -> None:
        ensure_dir(dest_dir.parent)
        staging = Path(tempfile.mkdtemp(prefix=".extract-", dir=dest_dir.parent))
        try:
            try:
                with tarfile.open(archive, "r:*") as tf:
                    tf.extractall(staging, members=self._safe_members(tf, staging))
            except (tarfile.TarError, OSError) as e:
                raise SourceFetchError(
                    f"failed to extract {package}: {e}",
                    details={'archive': str(archive)}
                ) from e

            root = staging / str(package)
            if not root.is_dir():
                raise SourceFetchError(
                    f"archive of {package} has no {package}/ directory",
                    details={'archive': str(archive)}
                )
            copy_dir(root, dest_dir)
        finally:
            remove_dir_all(staging)

    @staticmethod
    def _safe_members(tf: tarfile.TarFile, dest: Path):
        dest_root = dest.resolve()
        for member in tf.getmembers():
            if not (member.isfile() or member.isdir()):
                continue
            target = (dest_root / member.name).resolve()
            if os.path.commonpath([str(dest_root), str(target)]) != str(dest_root):
                logger.warning(f"Skipping archive entry outside the package: {member.name}")
                continue
            yield member
