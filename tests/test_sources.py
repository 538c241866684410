"""Tests for canonical source population and feature detection."""

import pytest

from ecosystem_matrix.core import (
    Experiment,
    RegistryPackage,
    RepositoryError,
    RuntimeRegistry,
    SourceFetchError,
    SourceRepoPackage,
)
from ecosystem_matrix.experiment import SourcePreparer, find_unstable_features
from ecosystem_matrix.experiment import sources as sources_module

from conftest import FakeFetcher, FakeMirror, FakeRuntime

FOO = RegistryPackage("foo", "1.0")
REPO = SourceRepoPackage("brson", "hello-rs")
PINNED = SourceRepoPackage("brson", "hello-rs", sha="b" * 40)


@pytest.fixture
def experiment(toolchains):
    return Experiment(name="exp1", packages=[FOO, REPO], toolchains=toolchains)


def mirror(layout, package):
    FakeMirror().shallow_clone_or_pull(package.url, layout.mirror_dir(package))


def test_registry_package_is_fetched_once(layout, experiment, toolchains):
    fetcher = FakeFetcher()
    preparer = SourcePreparer(layout, fetcher)

    first = preparer.populate(experiment, toolchains[0], FOO)
    second = preparer.populate(experiment, toolchains[0], FOO)

    assert first == second == layout.source_dir(experiment, toolchains[0], FOO)
    assert (first / "Cargo.toml").exists()
    assert fetcher.fetched == [FOO]


def test_each_toolchain_gets_its_own_copy(layout, experiment, toolchains):
    preparer = SourcePreparer(layout, FakeFetcher())
    dirs = {preparer.populate(experiment, tc, FOO) for tc in toolchains}
    assert len(dirs) == 2


def test_failed_fetch_leaves_no_directory(layout, experiment, toolchains):
    class HalfFetcher(FakeFetcher):
        def fetch(self, package, dest_dir):
            super().fetch(package, dest_dir)
            raise SourceFetchError("connection reset")

    with pytest.raises(SourceFetchError):
        SourcePreparer(layout, HalfFetcher()).populate(experiment, toolchains[0], FOO)
    assert not layout.source_dir(experiment, toolchains[0], FOO).exists()


def test_registry_package_without_fetcher(layout, experiment, toolchains):
    with pytest.raises(SourceFetchError):
        SourcePreparer(layout).populate(experiment, toolchains[0], FOO)


def test_repo_is_copied_from_mirror(layout, experiment, toolchains):
    mirror(layout, REPO)
    source_dir = SourcePreparer(layout).populate(experiment, toolchains[1], REPO)
    assert (source_dir / "Cargo.toml").read_text() == (layout.mirror_dir(REPO) / "Cargo.toml").read_text()


def test_repo_without_mirror(layout, experiment, toolchains):
    with pytest.raises(SourceFetchError):
        SourcePreparer(layout).populate(experiment, toolchains[0], REPO)


def test_pinned_repo_checks_out_commit(layout, toolchains, monkeypatch):
    experiment = Experiment(name="exp1", packages=[PINNED], toolchains=toolchains)
    mirror(layout, PINNED)
    git_calls = []
    monkeypatch.setattr(sources_module, "get_current_commit", lambda path: "a" * 40)
    monkeypatch.setattr(
        sources_module, "fetch_commit", lambda path, sha, timeout: git_calls.append(("fetch", sha))
    )
    monkeypatch.setattr(
        sources_module, "checkout_commit", lambda path, sha, force: git_calls.append(("checkout", sha))
    )

    SourcePreparer(layout).populate(experiment, toolchains[0], PINNED)

    assert git_calls == [("fetch", "b" * 40), ("checkout", "b" * 40)]


def test_pinned_repo_checkout_failure(layout, toolchains, monkeypatch):
    experiment = Experiment(name="exp1", packages=[PINNED], toolchains=toolchains)
    mirror(layout, PINNED)

    def unreachable(path, sha, timeout):
        raise RepositoryError("remote does not have the commit")

    monkeypatch.setattr(sources_module, "get_current_commit", lambda path: "a" * 40)
    monkeypatch.setattr(sources_module, "fetch_commit", unreachable)

    with pytest.raises(SourceFetchError):
        SourcePreparer(layout).populate(experiment, toolchains[0], PINNED)
    assert not layout.source_dir(experiment, toolchains[0], PINNED).exists()


def test_two_pins_of_one_repository_get_separate_sources(layout, toolchains, monkeypatch):
    other = SourceRepoPackage("brson", "hello-rs", sha="c" * 40)
    experiment = Experiment(name="exp1", packages=[PINNED, other], toolchains=toolchains)
    mirror(layout, PINNED)
    checked_out = {}
    monkeypatch.setattr(sources_module, "get_current_commit", lambda path: "a" * 40)
    monkeypatch.setattr(sources_module, "fetch_commit", lambda path, sha, timeout: None)
    monkeypatch.setattr(
        sources_module, "checkout_commit", lambda path, sha, force: checked_out.setdefault(path, sha)
    )

    preparer = SourcePreparer(layout)
    first = preparer.populate(experiment, toolchains[0], PINNED)
    second = preparer.populate(experiment, toolchains[0], other)

    assert first != second
    assert first not in second.parents and second not in first.parents
    assert sorted(checked_out.values()) == ["b" * 40, "c" * 40]


def test_find_unstable_features(tmp_path):
    (tmp_path / "src" / "bin").mkdir(parents=True)
    (tmp_path / "target" / "debug").mkdir(parents=True)
    (tmp_path / "src" / "lib.rs").write_text(
        "#![feature(never_type, box_syntax)]\n#![ feature ( never_type ) ]\n#![allow(dead_code)]\n"
    )
    (tmp_path / "src" / "bin" / "main.rs").write_text("#![feature(asm,)]\nfn main() {}\n")
    (tmp_path / "target" / "debug" / "build.rs").write_text("#![feature(generated)]\n")

    assert find_unstable_features(tmp_path) == ["asm", "box_syntax", "never_type"]


def test_find_unstable_features_none(tmp_path):
    (tmp_path / "lib.rs").write_text("pub fn f() {}\n")
    assert find_unstable_features(tmp_path) == []


def test_runtime_registry_hands_out_one_instance_per_toolchain(toolchains):
    created = []

    def factory(toolchain):
        created.append(toolchain)
        return FakeRuntime(toolchain)

    registry = RuntimeRegistry(factory)

    assert registry.get(toolchains[0]) is registry(toolchains[0])
    registry.get(toolchains[1])
    assert created == toolchains
    assert registry.list_toolchains() == ["beta", "stable"]
