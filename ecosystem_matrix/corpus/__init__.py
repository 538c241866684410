"""
Corpus selection for the ecosystem regression matrix framework.
"""

from .selector import CorpusSelector
from .sources import JsonCorpusSource

__all__ = [
    'CorpusSelector',
    'JsonCorpusSource',
]
