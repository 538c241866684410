"""
Detection of unstable language features used by a package.
"""

import re
from pathlib import Path
from typing import List, Union
import logging

logger = logging.getLogger(__name__)

_FEATURE_ATTR = re.compile(r'#!\[\s*feature\s*\(([^)]*)\)\s*\]')

_SKIPPED_DIRS = {'.git', 'target'}


def find_unstable_features(source_dir: Union[str, Path]) -> List[str]:
    """
    Collect the names enabled by crate-level ``#![feature(...)]`` attributes.

    Args:
        source_dir: Package source tree

    Returns:
        Sorted, deduplicated feature names
    """
    features = set()
    for path in sorted(Path(source_dir).rglob('*.rs')):
        if _SKIPPED_DIRS.intersection(path.relative_to(source_dir).parts):
            continue
        try:
            text = path.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            logger.warning(f"Unable to read {path}: {e}")
            continue

        for match in _FEATURE_ATTR.finditer(text):
            for name in match.group(1).split(','):
                name = name.strip()
                if name:
                    features.add(name)

    return sorted(features)
