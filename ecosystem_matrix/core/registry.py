"""
Registry of toolchain runtimes.

Exactly one runtime instance exists per toolchain, so that the runtime's
serialization of dependency-cache writes covers every task of the toolchain.
"""

import threading
from typing import Callable, Dict, List
import logging

from .data_models import Toolchain
from .interfaces import ToolchainRuntime

logger = logging.getLogger(__name__)


class RuntimeRegistry:
    """
    Creates runtimes on demand and hands out the same instance afterwards.

    Example:
        >>> registry = RuntimeRegistry(lambda tc: RustupToolchainRuntime(tc, layout))
        >>> runtime = registry.get(Toolchain.parse('stable'))
        >>> runtime is registry.get(Toolchain.parse('stable'))
        True
    """

    def __init__(self, factory: Callable[[Toolchain], ToolchainRuntime]):
        """
        Initialize the registry.

        Args:
            factory: Creates the runtime of a toolchain
        """
        self._factory = factory
        self._runtimes: Dict[Toolchain, ToolchainRuntime] = {}
        self._lock = threading.Lock()

    def get(self, toolchain: Toolchain) -> ToolchainRuntime:
        with self._lock:
            runtime = self._runtimes.get(toolchain)
            if runtime is None:
                runtime = self._factory(toolchain)
                self._runtimes[toolchain] = runtime
                logger.debug(f"Registered runtime for {toolchain}")
            return runtime

    __call__ = get

    def list_toolchains(self) -> List[str]:
        """List the toolchains with a runtime."""
        with self._lock:
            return sorted(str(tc) for tc in self._runtimes)
