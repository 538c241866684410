"""
Corpus selection for new experiments.

A CorpusSelection mode is resolved into a concrete, ordered package list
using a CorpusSource and, for the demo mode, the curated lists from the
framework configuration.
"""

import random
from typing import List, Optional
import logging

from ..config.schema import DemoCorpusConfig
from ..core.data_models import CorpusSelection, Package, RegistryPackage, SourceRepoPackage
from ..core.exceptions import CorpusConsistencyError
from ..core.interfaces import CorpusSource

logger = logging.getLogger(__name__)


class CorpusSelector:
    """
    Resolves selection modes into package lists.

    Example:
        selector = CorpusSelector(JsonCorpusSource('./lists'), config.demo_crates)
        packages = selector.select(CorpusSelection.TOP_100)
    """

    SMALL_RANDOM_COUNT = 20
    TOP_COUNT = 100

    def __init__(
        self,
        source: CorpusSource,
        demo: Optional[DemoCorpusConfig] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the selector.

        Args:
            source: Source of the full and ranked corpus
            demo: Curated demo lists
            rng: Random generator for the small-random mode; a fresh,
                unseeded generator is used when omitted
        """
        self.source = source
        self.demo = demo or DemoCorpusConfig()
        self.rng = rng

    def select(self, selection: CorpusSelection) -> List[Package]:
        """
        Resolve a selection mode.

        Raises:
            CorpusConsistencyError: If the demo lists do not match the corpus
            NotFoundError, CorruptStateError: If the corpus cannot be read
        """
        if selection is CorpusSelection.FULL:
            packages = self.source.read_all_packages()
        elif selection is CorpusSelection.DEMO:
            packages = self.demo_list()
        elif selection is CorpusSelection.SMALL_RANDOM:
            packages = self.small_random()
        elif selection is CorpusSelection.TOP_100:
            packages = self.top_100()
        else:
            raise ValueError(f"unsupported corpus selection: {selection}")

        logger.info(f"Selected {len(packages)} packages ({selection.value})")
        return packages

    def demo_list(self) -> List[Package]:
        remaining = set(self.demo.crates)
        repos = self.demo.github_repos
        expected = self.demo.expected_count

        result = []
        for package in self.source.read_all_packages():
            if isinstance(package, RegistryPackage):
                if package.name in remaining:
                    remaining.remove(package.name)
                    result.append(package)
            elif isinstance(package, SourceRepoPackage):
                if any(package.url.endswith(repo) for repo in repos):
                    result.append(package)

        if len(result) != expected:
            raise CorpusConsistencyError(
                "demo corpus does not match the package lists",
                details={
                    'expected': expected,
                    'matched': len(result),
                    'missing_crates': sorted(remaining),
                }
            )
        return result

    def small_random(self) -> List[Package]:
        packages = self.source.read_all_packages()
        rng = self.rng or random.Random()
        count = min(self.SMALL_RANDOM_COUNT, len(packages))
        return sorted(rng.sample(packages, count))

    def top_100(self) -> List[Package]:
        return self.source.read_popularity_ranked()[:self.TOP_COUNT]
