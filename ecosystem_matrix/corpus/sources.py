"""
Corpus sources backed by JSON list files.

The lists directory contains:

- ``registry.json``: ``[{"name": ..., "version": ...}, ...]``
- ``github.json``: ``["org/name", ...]`` or ``[{"org": ..., "name": ..., "sha": ...}]``
- ``popularity.json``: registry packages ranked from most to least popular
"""

import json
from pathlib import Path
from typing import Any, List, Union
import logging

from ..core.data_models import Package, RegistryPackage, SourceRepoPackage
from ..core.exceptions import CorruptStateError, NotFoundError
from ..core.interfaces import CorpusSource

logger = logging.getLogger(__name__)


class JsonCorpusSource(CorpusSource):
    """
    Corpus source reading JSON list files from a directory.

    Example:
        source = JsonCorpusSource('./lists')
        every_package = source.read_all_packages()
        ranked = source.read_popularity_ranked()
    """

    REGISTRY_LIST = "registry.json"
    GITHUB_LIST = "github.json"
    POPULARITY_LIST = "popularity.json"

    def __init__(self, lists_dir: Union[str, Path]):
        self.lists_dir = Path(lists_dir)

    def read_all_packages(self) -> List[Package]:
        packages = set(self._read_registry(self.REGISTRY_LIST))
        packages.update(self._read_github())
        result = sorted(packages)
        logger.info(f"Loaded {len(result)} packages from {self.lists_dir}")
        return result

    def read_popularity_ranked(self) -> List[Package]:
        return list(self._read_registry(self.POPULARITY_LIST))

    def _load(self, file_name: str) -> List[Any]:
        path = self.lists_dir / file_name
        if not path.exists():
            raise NotFoundError(
                f"Corpus list not found: {file_name}",
                details={'path': str(path)}
            )
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            raise CorruptStateError(
                f"Corpus list is not valid JSON: {file_name}",
                details={'path': str(path), 'error': str(e)}
            ) from e
        if not isinstance(data, list):
            raise CorruptStateError(
                f"Corpus list must be a JSON array: {file_name}",
                details={'path': str(path)}
            )
        return data

    def _read_registry(self, file_name: str) -> List[RegistryPackage]:
        try:
            return [
                RegistryPackage(name=entry['name'], version=entry['version'])
                for entry in self._load(file_name)
            ]
        except (KeyError, TypeError) as e:
            raise CorruptStateError(
                f"Malformed entry in {file_name}: {e}",
                details={'path': str(self.lists_dir / file_name)}
            ) from e

    def _read_github(self) -> List[SourceRepoPackage]:
        # The source-repo list is optional; a registry-only corpus is valid.
        if not (self.lists_dir / self.GITHUB_LIST).exists():
            return []

        repos = []
        for entry in self._load(self.GITHUB_LIST):
            if isinstance(entry, str):
                org, sep, name = entry.partition('/')
                if not sep or not org or not name or '/' in name:
                    raise CorruptStateError(
                        f"Malformed repository slug in {self.GITHUB_LIST}: {entry!r}"
                    )
                repos.append(SourceRepoPackage(org=org, name=name))
            elif isinstance(entry, dict) and 'org' in entry and 'name' in entry:
                repos.append(SourceRepoPackage(
                    org=entry['org'], name=entry['name'], sha=entry.get('sha')
                ))
            else:
                raise CorruptStateError(
                    f"Malformed entry in {self.GITHUB_LIST}: {entry!r}"
                )
        return repos
