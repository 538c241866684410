#!/usr/bin/env python3
"""
Minimal Experiment Script

This script demonstrates the minimal code needed to compare two toolchains
on the curated demo corpus.

Usage:
    python minimal_experiment.py

Requirements:
    - ecosystem_matrix installed
    - rustup and git on PATH
    - Corpus lists in ./lists (registry.json, optionally github.json)
"""

import json
import sys

from ecosystem_matrix import (
    CorpusSelection,
    CorpusSelector,
    ExperimentStore,
    GitMirror,
    HttpRegistryFetcher,
    JsonCorpusSource,
    JsonlResultSink,
    MatrixEngine,
    MirrorSync,
    Mode,
    RuntimeRegistry,
    RustupToolchainRuntime,
    SourcePreparer,
    Toolchain,
    WorkspaceLayout,
)
from ecosystem_matrix.config import get_default_config
from ecosystem_matrix.core import FrameworkError
from ecosystem_matrix.utils import configure_logging


def main():
    """Run a minimal stable-vs-beta experiment."""
    config = get_default_config(work_dir='./work')
    configure_logging(config.logging)

    layout = WorkspaceLayout(config.directories.work_dir)
    selector = CorpusSelector(JsonCorpusSource(config.directories.lists_dir), config.demo_crates)
    store = ExperimentStore(layout, selector)

    experiment = store.define(
        'demo',
        [Toolchain.parse('stable'), Toolchain.parse('beta')],
        mode=Mode.BUILD_AND_TEST,
        selection=CorpusSelection.DEMO,
    )
    print(f"Defined experiment '{experiment.name}' with {len(experiment.packages)} packages")

    runtimes = RuntimeRegistry(
        lambda tc: RustupToolchainRuntime(tc, layout, timeout=config.execution.build_timeout)
    )
    sink = JsonlResultSink(layout.results_dir)
    engine = MatrixEngine(
        config,
        layout,
        runtimes,
        sink,
        preparer=SourcePreparer(layout, HttpRegistryFetcher(layout.registry_cache_dir)),
        mirror_sync=MirrorSync(layout, GitMirror()),
    )

    try:
        summary = engine.run(experiment)
    except KeyboardInterrupt:
        print("\n\nExperiment interrupted by user")
        sys.exit(1)
    except FrameworkError as e:
        print(f"\n\nExperiment failed with error: {e}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("EXPERIMENT RESULTS")
    print("=" * 60)
    print(json.dumps(summary.to_dict(), indent=2))
    print(f"\nResults written to: {sink.experiment_dir(experiment)}")

    return summary


if __name__ == '__main__':
    main()
