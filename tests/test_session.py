"""Tests for session naming, file layout and the lock file."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from bisync.backends import MemoryFs
from bisync.errors import LockError
from bisync.sync.session import (
    LockFile,
    SessionFiles,
    canonical_path,
    session_name,
)


class TestSessionName:
    """Tests for canonical_path() / session_name()."""

    def test_unsafe_characters_replaced(self):
        assert canonical_path("local:/home/me/My Docs") == "local__home_me_My_Docs"

    def test_leading_and_trailing_underscores_stripped(self):
        assert canonical_path("/a/b/") == "a_b"

    def test_session_joins_both_sides(self):
        name = session_name(MemoryFs("/one"), MemoryFs("/two"))
        assert name == "memory__one..memory__two"

    def test_session_is_order_sensitive(self):
        a, b = MemoryFs("/one"), MemoryFs("/two")
        assert session_name(a, b) != session_name(b, a)


class TestSessionFiles:
    """Tests for SessionFiles paths."""

    def test_layout(self, tmp_path: Path):
        files = SessionFiles(tmp_path, "s")
        assert files.listing1 == tmp_path / "s.path1.lst"
        assert files.listing2 == tmp_path / "s.path2.lst"
        assert files.new_listing1 == tmp_path / "s.path1.lst-new"
        assert files.old_listing2 == tmp_path / "s.path2.lst-old"
        assert files.lock_file == tmp_path / "s.lck"
        assert files.filters_file == tmp_path / "s.filters.md5"

    def test_dry_run_uses_dry_listings(self, tmp_path: Path):
        files = SessionFiles(tmp_path, "s", dry_run=True)
        assert files.listing1 == tmp_path / "s.path1.lst-dry"
        assert files.new_listing1 == tmp_path / "s.path1.lst-dry-new"
        assert files.real_listing1 == tmp_path / "s.path1.lst"


class TestLockFile:
    """Tests for LockFile acquire/release."""

    def test_acquire_writes_pid(self, tmp_path: Path):
        lock = LockFile(tmp_path / "s.lck")
        lock.acquire()
        assert lock.held
        assert (tmp_path / "s.lck").read_text() == str(os.getpid())
        lock.release()
        assert not (tmp_path / "s.lck").exists()

    def test_second_acquire_fails(self, tmp_path: Path):
        first = LockFile(tmp_path / "s.lck")
        first.acquire()
        with pytest.raises(LockError, match="prior lock file found"):
            LockFile(tmp_path / "s.lck").acquire()
        first.release()

    def test_unusable_workdir_is_lock_error(self, tmp_path: Path):
        workdir = tmp_path / "work"
        workdir.write_text("not a directory")
        lock = LockFile(workdir / "s.lck")
        with pytest.raises(LockError, match="cannot create lock file"):
            lock.acquire()
        assert not lock.held

    def test_release_without_acquire_keeps_foreign_lock(self, tmp_path: Path):
        path = tmp_path / "s.lck"
        path.write_text("12345")
        LockFile(path).release()
        assert path.exists()

    def test_concurrent_acquire_has_one_winner(self, tmp_path: Path):
        """Exactly one of many racing threads obtains the lock."""
        path = tmp_path / "race.lck"
        barrier = threading.Barrier(8)
        winners = []
        losers = []

        def _contend():
            lock = LockFile(path)
            barrier.wait()
            try:
                lock.acquire()
            except LockError:
                losers.append(lock)
            else:
                winners.append(lock)

        threads = [threading.Thread(target=_contend) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 7
