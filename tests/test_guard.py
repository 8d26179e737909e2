"""Tests for the safety guard predicates."""

from __future__ import annotations

import pytest

from bisync.backends.base import FileInfo
from bisync.config_schema import BisyncOptions
from bisync.errors import AccessCheckError, SafetyAbort
from bisync.sync.deltas import DeltaDetector
from bisync.sync.guard import (
    all_changed,
    check_access,
    check_safety,
    excess_deletes,
)
from bisync.sync.listing import Listing

T = 1_600_000_000_000_000_000


def _listing(paths, size=1):
    return Listing(FileInfo(path=p, size=size, mtime_ns=T) for p in paths)


def _deltas(prior, current, side="Path1", **opts):
    return DeltaDetector(BisyncOptions(**opts)).classify(
        _listing(prior), _listing(current), side, 1
    )


def _hundred():
    return [f"f{i:03d}" for i in range(100)]


class TestExcessDeletes:
    """Tests for excess_deletes()."""

    def test_eighty_of_hundred_exceeds_default(self):
        files = _hundred()
        ds = _deltas(files, files[80:])
        assert ds.deleted_files == 80
        assert excess_deletes(ds, BisyncOptions())

    def test_exactly_at_threshold_passes(self):
        files = _hundred()
        ds = _deltas(files, files[50:])
        assert not excess_deletes(ds, BisyncOptions())

    def test_count_limit(self):
        files = _hundred()
        ds = _deltas(files, files[3:])
        assert excess_deletes(ds, BisyncOptions(max_delete_count=2))
        assert not excess_deletes(ds, BisyncOptions(max_delete_count=3))

    def test_no_deletes_never_trips(self):
        ds = _deltas(["a"], ["a"])
        assert not excess_deletes(ds, BisyncOptions(max_delete=0))


class TestAllChanged:
    """Tests for all_changed()."""

    def test_every_file_changed(self):
        ds = _deltas(["a", "b"], [])
        assert all_changed(ds)

    def test_first_run_is_not_all_changed(self):
        assert not all_changed(_deltas([], ["a"]))


class TestCheckAccess:
    """Tests for check_access()."""

    def test_matching_files_pass(self):
        check_access({"CHK", "d/CHK"}, {"d/CHK", "CHK"}, "CHK")

    def test_zero_files_fail(self):
        with pytest.raises(AccessCheckError, match="check file check failed"):
            check_access(set(), set(), "CHK")

    def test_count_mismatch_fails(self):
        with pytest.raises(AccessCheckError):
            check_access({"CHK", "d/CHK"}, {"CHK"}, "CHK")

    def test_same_count_different_names_fail(self):
        with pytest.raises(AccessCheckError):
            check_access({"a/CHK"}, {"b/CHK"}, "CHK")


class TestCheckSafety:
    """Tests for check_safety() ordering and force."""

    def test_excess_deletes_abort(self):
        files = _hundred()
        ds1 = _deltas(files, files[80:])
        ds2 = _deltas(files, files, side="Path2")
        with pytest.raises(SafetyAbort, match="too many deletes"):
            check_safety(ds1, ds2, BisyncOptions())

    def test_all_changed_abort(self):
        ds1 = _deltas(["a"], ["a"])
        ds2 = DeltaDetector(BisyncOptions()).classify(
            _listing(["a"]), _listing(["a"], size=9), "Path2", 1
        )
        with pytest.raises(SafetyAbort, match="all files were changed"):
            check_safety(ds1, ds2, BisyncOptions())

    def test_force_skips_guards(self):
        files = _hundred()
        ds1 = _deltas(files, files[80:])
        ds2 = _deltas(files, files, side="Path2")
        check_safety(ds1, ds2, BisyncOptions(force=True))

    def test_access_check_runs_even_with_force(self):
        ds1 = _deltas(["a"], ["a"])
        ds2 = _deltas(["a"], ["a"], side="Path2")
        with pytest.raises(AccessCheckError):
            check_safety(
                ds1, ds2, BisyncOptions(check_access=True, force=True)
            )
