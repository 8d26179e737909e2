"""Shared pytest fixtures for bisync tests."""

from __future__ import annotations

import itertools

import pytest

from bisync.backends import MemoryFs
from bisync.config_schema import BisyncOptions
from bisync.sync import bisync

# Fixed, well-separated modification times keep change detection
# independent of the wall clock.
T0 = 1_600_000_000_000_000_000
T1 = T0 + 60_000_000_000
T2 = T0 + 120_000_000_000


@pytest.fixture
def clock():
    """Monotonic fake clock (1 second steps) for MemoryFs writes."""
    counter = itertools.count(T2 + 1_000_000_000, 1_000_000_000)
    return lambda: next(counter)


@pytest.fixture
def fs1(clock):
    return MemoryFs("/one", clock=clock)


@pytest.fixture
def fs2(clock):
    return MemoryFs("/two", clock=clock)


@pytest.fixture
def make_options(tmp_path):
    """Factory for ``BisyncOptions`` with a per-test work directory."""

    def _make(**overrides) -> BisyncOptions:
        overrides.setdefault("workdir", str(tmp_path / "work"))
        return BisyncOptions(**overrides)

    return _make


@pytest.fixture
def synced(fs1, fs2, make_options):
    """Populate both sides with the same files and run a resync.

    Returns a callable ``run(**overrides)`` performing a normal run.
    """

    def _setup(files: dict[str, str]):
        for path, content in files.items():
            fs1.write(path, content, T0)
            fs2.write(path, content, T0)
        bisync(fs1, fs2, make_options(resync=True))

        def _run(**overrides):
            return bisync(fs1, fs2, make_options(**overrides))

        return _run

    return _setup
