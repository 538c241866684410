"""
Concrete backends: toolchain runtime and registry fetcher.
"""

from .registry import HttpRegistryFetcher
from .rustup import RustupToolchainRuntime

__all__ = [
    'HttpRegistryFetcher',
    'RustupToolchainRuntime',
]
