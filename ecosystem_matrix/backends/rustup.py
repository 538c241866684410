"""
Toolchain runtime backed by rustup.

Every build-tool run is executed as ``rustup run <toolchain> cargo ...`` with
an environment derived from the experiment: a per-toolchain target directory,
the lint cap and, for flag-aware toolchains, the experiment's flag override.
"""

import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Sequence
import logging

from ..core.data_models import BuildOutput, Experiment, LockPolicy, Toolchain
from ..core.exceptions import BuildToolError, ToolchainPrepareError
from ..core.interfaces import ToolchainRuntime
from ..utils.layout import WorkspaceLayout

logger = logging.getLogger(__name__)

# Lets stable and beta toolchains accept -Z flags such as -Zno-index-update.
CHANNEL_OVERRIDE_VAR = "__CARGO_TEST_CHANNEL_OVERRIDE_DO_NOT_USE_THIS"

# Keep this much of the output in error messages.
OUTPUT_TAIL = 4000


class RustupToolchainRuntime(ToolchainRuntime):
    """
    Runs cargo through rustup for one toolchain.

    Runs with ``LockPolicy.UNLOCKED`` may write to the shared dependency
    cache and are serialized on this runtime; locked runs proceed
    concurrently.

    Example:
        runtime = RustupToolchainRuntime(Toolchain.parse('beta'), layout)
        runtime.prepare()
        output = runtime.run_build_tool(
            experiment, work_dir, ['build', '--frozen'],
            LockPolicy.LOCKED, allow_network=False, capture_output=True
        )
    """

    def __init__(
        self,
        toolchain: Toolchain,
        layout: WorkspaceLayout,
        timeout: Optional[float] = 900.0,
        rustup: str = "rustup"
    ):
        """
        Initialize the runtime.

        Args:
            toolchain: Toolchain to run
            layout: Workspace layout, used to place compiled artifacts
            timeout: Timeout of a single build-tool run in seconds
            rustup: rustup executable
        """
        super().__init__(toolchain)
        self.layout = layout
        self.timeout = timeout
        self.rustup = rustup
        self._cache_lock = threading.Lock()

    def prepare(self) -> None:
        cmd = [self.rustup, "toolchain", "install", "--profile", "minimal", self.toolchain.name]
        logger.info(f"[PREPARE] Installing toolchain {self.toolchain.name}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (subprocess.TimeoutExpired, OSError) as e:
            raise ToolchainPrepareError(
                f"failed to install toolchain {self.toolchain.name}: {e}",
                details={'command': ' '.join(cmd)}
            ) from e

        if result.returncode != 0:
            raise ToolchainPrepareError(
                f"failed to install toolchain {self.toolchain.name}",
                details={'returncode': result.returncode, 'stderr': result.stderr.strip()[-OUTPUT_TAIL:]}
            )

    def build_env(self, experiment: Experiment, allow_network: bool, args: Sequence[str]) -> Dict[str, str]:
        """Environment of a build-tool run for ``experiment``."""
        env = os.environ.copy()
        env["CARGO_TARGET_DIR"] = str(self.layout.target_dir(experiment.name, self.toolchain))

        rustflags = [f"--cap-lints={experiment.cap_lints.value}"]
        if self.toolchain.flag_aware and experiment.rustflags:
            rustflags.append(experiment.rustflags)
        env["RUSTFLAGS"] = " ".join(rustflags)

        if not allow_network:
            env["CARGO_NET_OFFLINE"] = "true"
        if any(arg.startswith("-Z") for arg in args):
            env[CHANNEL_OVERRIDE_VAR] = "nightly"
        return env

    def run_build_tool(
        self,
        experiment: Experiment,
        working_dir: Path,
        args: Sequence[str],
        lock_policy: LockPolicy,
        allow_network: bool,
        capture_output: bool
    ) -> BuildOutput:
        cmd = [self.rustup, "run", self.toolchain.name, "cargo", *args]
        env = self.build_env(experiment, allow_network, args)

        if lock_policy is LockPolicy.UNLOCKED:
            with self._cache_lock:
                return self._run(cmd, working_dir, env, capture_output)
        return self._run(cmd, working_dir, env, capture_output)

    def _run(
        self,
        cmd: Sequence[str],
        working_dir: Path,
        env: Dict[str, str],
        capture_output: bool
    ) -> BuildOutput:
        logger.debug(f"Running {' '.join(cmd)} in {working_dir}")
        stream = subprocess.PIPE if capture_output else subprocess.DEVNULL
        start = time.time()
        try:
            result = subprocess.run(
                cmd,
                cwd=working_dir,
                env=env,
                stdout=stream,
                stderr=stream,
                text=True,
                errors='replace',
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise BuildToolError(
                f"build tool timed out after {self.timeout}s",
                details={'command': ' '.join(cmd)},
                output=_decode(e.stdout) + _decode(e.stderr),
            ) from e
        except OSError as e:
            raise BuildToolError(
                f"failed to run build tool: {e}",
                details={'command': ' '.join(cmd)}
            ) from e

        output = BuildOutput(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            duration=time.time() - start,
        )
        if result.returncode != 0:
            raise BuildToolError(
                f"build tool exited with code {result.returncode}",
                details={'command': ' '.join(cmd), 'cwd': str(working_dir)},
                output=output.combined,
            )
        return output


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode('utf-8', errors='replace')
    return data
