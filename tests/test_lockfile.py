"""Tests for lock file generation, sharing and dependency fetching."""

import pytest

from ecosystem_matrix.config import LockfileConfig, PackageOverride
from ecosystem_matrix.core import (
    Experiment,
    LockfileError,
    LockPolicy,
    RegistryPackage,
    BuildToolError,
    Toolchain,
)
from ecosystem_matrix.experiment import LockManager, SourcePreparer, WorkDirIsolator

from conftest import FakeFetcher

FOO = RegistryPackage("foo", "1.0")


def make_experiment(toolchains, rustflags=None):
    return Experiment(name="exp1", packages=[FOO], toolchains=toolchains, rustflags=rustflags)


def populate(layout, experiment):
    preparer = SourcePreparer(layout, FakeFetcher())
    for toolchain in experiment.toolchains:
        preparer.populate(experiment, toolchain, FOO)


def make_manager(config, layout, runtimes):
    return LockManager(config, layout, WorkDirIsolator(layout), runtimes)


def lockfile(layout, experiment, toolchain):
    return layout.source_dir(experiment, toolchain, FOO) / "Cargo.lock"


def test_capture_lockfile_writes_canonical_source(config, layout, runtimes, toolchains):
    experiment = make_experiment(toolchains)
    populate(layout, experiment)
    manager = make_manager(config, layout, runtimes)

    manager.capture_lockfile(experiment, toolchains[0], FOO)

    assert lockfile(layout, experiment, toolchains[0]).exists()
    call = runtimes.get(toolchains[0]).calls[0]
    assert call['args'] == ["generate-lockfile", "--manifest-path", "Cargo.toml", "-Zno-index-update"]
    assert call['lock_policy'] is LockPolicy.UNLOCKED
    assert call['working_dir'] == layout.source_dir(experiment, toolchains[0], FOO)


def test_capture_lockfile_skips_existing_lock(config, layout, runtimes, toolchains):
    experiment = make_experiment(toolchains)
    populate(layout, experiment)
    lockfile(layout, experiment, toolchains[0]).write_text("existing")

    make_manager(config, layout, runtimes).capture_lockfile(experiment, toolchains[0], FOO)

    assert runtimes.get(toolchains[0]).calls == []
    assert lockfile(layout, experiment, toolchains[0]).read_text() == "existing"


def test_capture_lockfile_regenerates_when_configured(config, layout, runtimes, toolchains):
    config.crates["foo"] = PackageOverride(update_lockfile=True)
    experiment = make_experiment(toolchains)
    populate(layout, experiment)
    lockfile(layout, experiment, toolchains[0]).write_text("existing")

    make_manager(config, layout, runtimes).capture_lockfile(experiment, toolchains[0], FOO)

    assert runtimes.get(toolchains[0]).commands_for("foo") == ["generate-lockfile"]
    assert lockfile(layout, experiment, toolchains[0]).read_text() != "existing"


def test_capture_lockfile_failure_names_package(config, layout, runtimes, toolchains):
    runtimes.factory_kwargs["stable"] = {'failures': {'foo': {'generate-lockfile'}}}
    experiment = make_experiment(toolchains)
    populate(layout, experiment)

    with pytest.raises(LockfileError) as excinfo:
        make_manager(config, layout, runtimes).capture_lockfile(experiment, toolchains[0], FOO)

    assert "foo-1.0" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, BuildToolError)


def test_fetch_runs_in_isolated_copy(config, layout, runtimes, toolchains):
    experiment = make_experiment(toolchains)
    populate(layout, experiment)
    manager = make_manager(config, layout, runtimes)

    manager.fetch_crate_deps(experiment, toolchains[1], FOO)

    call = runtimes.get(toolchains[1]).calls[0]
    assert call['args'] == ["fetch", "--locked", "--manifest-path", "Cargo.toml"]
    assert call['allow_network'] is True
    assert call['lock_policy'] is LockPolicy.UNLOCKED
    assert call['working_dir'] != layout.source_dir(experiment, toolchains[1], FOO)
    assert not call['working_dir'].exists()


def test_ensure_lockfiles_shares_first_lock(config, layout, runtimes, toolchains):
    experiment = make_experiment(toolchains)
    populate(layout, experiment)

    make_manager(config, layout, runtimes).ensure_lockfiles(experiment, FOO)

    first = lockfile(layout, experiment, toolchains[0])
    second = lockfile(layout, experiment, toolchains[1])
    assert second.read_text() == first.read_text()
    assert runtimes.get(toolchains[1]).calls == []


def test_ensure_lockfiles_without_sharing(config, layout, runtimes, toolchains):
    config.lockfile = LockfileConfig(share_across_toolchains=False)
    experiment = make_experiment(toolchains)
    populate(layout, experiment)

    make_manager(config, layout, runtimes).ensure_lockfiles(experiment, FOO)

    assert runtimes.get(toolchains[0]).commands_for("foo") == ["generate-lockfile"]
    assert runtimes.get(toolchains[1]).commands_for("foo") == ["generate-lockfile"]
    assert "beta" in lockfile(layout, experiment, toolchains[1]).read_text()


def test_ensure_lockfiles_regenerates_for_flag_aware(config, layout, runtimes):
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("stable+rustflags")]
    experiment = make_experiment(toolchains, rustflags="-Zsanitizer=address")
    populate(layout, experiment)

    make_manager(config, layout, runtimes).ensure_lockfiles(experiment, FOO)

    assert runtimes.get(toolchains[1]).commands_for("foo") == ["generate-lockfile"]


def test_ensure_lockfiles_can_share_with_flag_aware(config, layout, runtimes):
    config.lockfile = LockfileConfig(share_across_toolchains=True, regenerate_for_flag_aware=False)
    toolchains = [Toolchain.parse("stable"), Toolchain.parse("stable+rustflags")]
    experiment = make_experiment(toolchains, rustflags="-Zsanitizer=address")
    populate(layout, experiment)

    make_manager(config, layout, runtimes).ensure_lockfiles(experiment, FOO)

    assert runtimes.get(toolchains[1]).calls == []
    assert lockfile(layout, experiment, toolchains[1]).exists()
