"""Tests for the rustup runtime and the HTTP registry fetcher."""

import io
import socket
import subprocess
import tarfile
from urllib.error import URLError

import pytest

from ecosystem_matrix.backends import HttpRegistryFetcher, RustupToolchainRuntime
from ecosystem_matrix.backends import registry as registry_module
from ecosystem_matrix.backends.rustup import CHANNEL_OVERRIDE_VAR
from ecosystem_matrix.core import (
    BuildToolError,
    CapLints,
    Experiment,
    LockPolicy,
    RegistryPackage,
    SourceFetchError,
    Toolchain,
    ToolchainPrepareError,
)

FOO = RegistryPackage("foo", "1.0.0")


def make_experiment(toolchains, rustflags=None):
    return Experiment(
        name="exp1", packages=[FOO], toolchains=toolchains,
        cap_lints=CapLints.WARN, rustflags=rustflags,
    )


class RecordingRun:
    """Replacement for subprocess.run returning a canned result."""

    def __init__(self, returncode=0, stdout="", stderr="", raises=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs))
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


def test_build_env_for_plain_toolchain(layout):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("beta")]
    runtime = RustupToolchainRuntime(toolchains[1], layout)

    env = runtime.build_env(make_experiment(toolchains), allow_network=False, args=["build", "--frozen"])

    assert env["CARGO_TARGET_DIR"] == str(layout.target_dir("exp1", toolchains[1]))
    assert env["RUSTFLAGS"] == "--cap-lints=warn"
    assert env["CARGO_NET_OFFLINE"] == "true"
    assert CHANNEL_OVERRIDE_VAR not in env


def test_build_env_for_flag_aware_toolchain(layout):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("stable+rustflags")]
    experiment = make_experiment(toolchains, rustflags="-Zsanitizer=address")

    flagged = RustupToolchainRuntime(toolchains[1], layout).build_env(
        experiment, allow_network=True, args=["generate-lockfile", "-Zno-index-update"]
    )
    plain = RustupToolchainRuntime(toolchains[0], layout).build_env(
        experiment, allow_network=True, args=["fetch"]
    )

    assert flagged["RUSTFLAGS"] == "--cap-lints=warn -Zsanitizer=address"
    assert flagged[CHANNEL_OVERRIDE_VAR] == "nightly"
    assert "CARGO_NET_OFFLINE" not in flagged
    assert plain["RUSTFLAGS"] == "--cap-lints=warn"
    assert flagged["CARGO_TARGET_DIR"] != plain["CARGO_TARGET_DIR"]


def test_run_build_tool_invokes_cargo_through_rustup(layout, tmp_path, monkeypatch):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("beta")]
    fake_run = RecordingRun(stdout="Compiling foo", stderr="Finished")
    monkeypatch.setattr(subprocess, "run", fake_run)
    runtime = RustupToolchainRuntime(toolchains[0], layout, timeout=60.0)

    output = runtime.run_build_tool(
        make_experiment(toolchains), tmp_path, ["build", "--frozen"],
        LockPolicy.LOCKED, allow_network=False, capture_output=True,
    )

    cmd, kwargs = fake_run.calls[0]
    assert cmd == ["rustup", "run", "stable", "cargo", "build", "--frozen"]
    assert kwargs['cwd'] == tmp_path
    assert kwargs['stdout'] == subprocess.PIPE
    assert kwargs['timeout'] == 60.0
    assert output.combined == "Compiling foo\nFinished"


def test_quiet_run_discards_output(layout, tmp_path, monkeypatch):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("beta")]
    fake_run = RecordingRun(stdout=None, stderr=None)
    monkeypatch.setattr(subprocess, "run", fake_run)

    output = RustupToolchainRuntime(toolchains[0], layout).run_build_tool(
        make_experiment(toolchains), tmp_path, ["test", "--frozen"],
        LockPolicy.LOCKED, allow_network=False, capture_output=False,
    )

    assert fake_run.calls[0][1]['stdout'] == subprocess.DEVNULL
    assert output.combined == ""


def test_non_zero_exit_raises_with_output(layout, tmp_path, monkeypatch):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("beta")]
    monkeypatch.setattr(subprocess, "run", RecordingRun(returncode=101, stderr="error[E0425]"))

    with pytest.raises(BuildToolError) as excinfo:
        RustupToolchainRuntime(toolchains[0], layout).run_build_tool(
            make_experiment(toolchains), tmp_path, ["build", "--frozen"],
            LockPolicy.UNLOCKED, allow_network=True, capture_output=True,
        )

    assert excinfo.value.output == "error[E0425]"


def test_timeout_raises_build_tool_error(layout, tmp_path, monkeypatch):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("beta")]
    expired = subprocess.TimeoutExpired(["rustup"], 5, output=b"partial")
    monkeypatch.setattr(subprocess, "run", RecordingRun(raises=expired))

    with pytest.raises(BuildToolError) as excinfo:
        RustupToolchainRuntime(toolchains[0], layout, timeout=5).run_build_tool(
            make_experiment(toolchains), tmp_path, ["test", "--frozen"],
            LockPolicy.LOCKED, allow_network=False, capture_output=True,
        )

    assert excinfo.value.output == "partial"


def test_prepare_installs_toolchain(layout, monkeypatch):
    fake_run = RecordingRun()
    monkeypatch.setattr(subprocess, "run", fake_run)

    RustupToolchainRuntime(Toolchain.parse("nightly-2018-01-01+rustflags"), layout).prepare()

    assert fake_run.calls[0][0] == [
        "rustup", "toolchain", "install", "--profile", "minimal", "nightly-2018-01-01"
    ]


def test_prepare_failure(layout, monkeypatch):
    monkeypatch.setattr(subprocess, "run", RecordingRun(returncode=1, stderr="no such toolchain"))
    with pytest.raises(ToolchainPrepareError):
        RustupToolchainRuntime(Toolchain.parse("bogus"), layout).prepare()


def build_crate_archive(path, package, extra_members=()):
    """Write a gzipped tarball laid out like a registry archive."""
    path.parent.mkdir(parents=True, exist_ok=True)
    files = {
        f"{package}/Cargo.toml": f'[package]\nname = "{package.name}"\n',
        f"{package}/src/lib.rs": "pub fn f() {}\n",
    }
    files.update(dict(extra_members))
    with tarfile.open(path, "w:gz") as tf:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))


def test_fetch_extracts_cached_archive(tmp_path, monkeypatch):
    fetcher = HttpRegistryFetcher(tmp_path / "cache")
    build_crate_archive(fetcher.archive_path(FOO), FOO, {"../escape.txt": "nope"})

    def no_download(url, timeout):
        raise AssertionError(f"unexpected download of {url}")

    monkeypatch.setattr(registry_module, "urlopen", no_download)
    dest = tmp_path / "sources" / "foo"

    fetcher.fetch(FOO, dest)

    assert (dest / "Cargo.toml").exists()
    assert (dest / "src" / "lib.rs").read_text() == "pub fn f() {}\n"
    assert not (tmp_path / "sources" / "escape.txt").exists()
    assert [p.name for p in (tmp_path / "sources").iterdir()] == ["foo"]


def test_fetch_downloads_missing_archive(tmp_path, monkeypatch):
    fetcher = HttpRegistryFetcher(tmp_path / "cache", base_url="https://mirror.example/crates/")
    requested = []
    upstream = tmp_path / "upstream.crate"
    build_crate_archive(upstream, FOO)

    def fake_urlopen(url, timeout):
        requested.append((url, timeout))
        return io.BytesIO(upstream.read_bytes())

    monkeypatch.setattr(registry_module, "urlopen", fake_urlopen)

    fetcher.fetch(FOO, tmp_path / "dest")
    fetcher.fetch(FOO, tmp_path / "dest2")

    assert requested == [("https://mirror.example/crates/foo/foo-1.0.0.crate", 60.0)]
    assert fetcher.archive_path(FOO).exists()
    assert (tmp_path / "dest2" / "Cargo.toml").exists()


def test_fetch_download_failure(tmp_path, monkeypatch):
    def failing(url, timeout):
        raise URLError("name resolution failed")

    monkeypatch.setattr(registry_module, "urlopen", failing)
    fetcher = HttpRegistryFetcher(tmp_path / "cache")

    with pytest.raises(SourceFetchError):
        fetcher.fetch(FOO, tmp_path / "dest")
    assert not fetcher.archive_path(FOO).exists()


def test_stalled_download_times_out(tmp_path, monkeypatch):
    class StalledResponse(io.BytesIO):
        def read(self, *args):
            raise socket.timeout("timed out")

    timeouts = []

    def stalled(url, timeout):
        timeouts.append(timeout)
        return StalledResponse()

    monkeypatch.setattr(registry_module, "urlopen", stalled)
    fetcher = HttpRegistryFetcher(tmp_path / "cache", timeout=5.0)

    with pytest.raises(SourceFetchError, match="timed out"):
        fetcher.fetch(FOO, tmp_path / "dest")
    assert timeouts == [5.0]
    assert not fetcher.archive_path(FOO).exists()
    assert list(fetcher.archive_path(FOO).parent.iterdir()) == []


def test_archive_without_package_root(tmp_path):
    fetcher = HttpRegistryFetcher(tmp_path / "cache")
    build_crate_archive(fetcher.archive_path(FOO), RegistryPackage("other", "2.0"))

    with pytest.raises(SourceFetchError):
        fetcher.fetch(FOO, tmp_path / "dest")
