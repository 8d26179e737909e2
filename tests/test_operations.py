"""Tests for generic backend operations."""

import io

from bisync.backends import LocalFs, MemoryFs
from bisync.backends.base import FileInfo
from bisync.backends.operations import (
    copy_file,
    entries_match,
    files_equal,
    hashes_comparable,
    remove_empty_dirs,
)

T = 1_600_000_000_000_000_000


class NoServerCopyFs(MemoryFs):
    """MemoryFs that never offers a server-side copy."""

    def can_server_side_copy(self, src_fs):
        return False


class TestCopyFile:
    """Tests for copy_file()."""

    def test_server_side_copy_between_memory_backends(self):
        src, dst = MemoryFs("/s"), MemoryFs("/d")
        src.write("a/b.txt", "data", T)

        info = copy_file(src, dst, "a/b.txt")

        assert dst.read("a/b.txt") == b"data"
        assert info.mtime_ns == T
        assert info.size == 4

    def test_streamed_copy_preserves_mtime(self, tmp_path):
        src = MemoryFs("/s")
        src.write("x.bin", b"\x00\x01", T)
        dst = LocalFs(tmp_path / "dst")

        info = copy_file(src, dst, "x.bin")

        assert (tmp_path / "dst" / "x.bin").read_bytes() == b"\x00\x01"
        assert info.mtime_ns == T

    def test_copy_to_other_name(self):
        src, dst = MemoryFs("/s"), NoServerCopyFs("/d")
        src.write("a", "1", T)
        copy_file(src, dst, "a", "b")
        assert dst.paths() == ["b"]

    def test_missing_source(self):
        src, dst = MemoryFs("/s"), NoServerCopyFs("/d")
        try:
            copy_file(src, dst, "nope")
        except FileNotFoundError as exc:
            assert "nope" in str(exc)
        else:
            raise AssertionError("expected FileNotFoundError")


class TestEntriesMatch:
    """Tests for metadata comparison."""

    def _f(self, size=1, mtime=T, hash=None, is_dir=False):
        return FileInfo(
            path="p", size=size, mtime_ns=mtime, hash=hash, is_dir=is_dir
        )

    def test_size_difference(self):
        assert not entries_match(self._f(size=1), self._f(size=2), 1)

    def test_hash_decides_when_comparable(self):
        a = self._f(hash="md5:aa", mtime=T)
        b = self._f(hash="md5:aa", mtime=T + 10**12)
        assert entries_match(a, b, 1)
        assert not entries_match(a, self._f(hash="md5:bb"), 1)

    def test_different_hash_types_fall_back_to_time(self):
        a = self._f(hash="md5:aa")
        b = self._f(hash="sha1:bb")
        assert not hashes_comparable(a, b)
        assert entries_match(a, b, 1)

    def test_time_within_precision(self):
        a = self._f(mtime=T)
        b = self._f(mtime=T + 500_000_000)
        assert entries_match(a, b, 1_000_000_000)
        assert not entries_match(a, b, 1)

    def test_no_modtime_support_size_decides(self):
        assert entries_match(self._f(mtime=T), self._f(mtime=0), None)

    def test_directories(self):
        d = self._f(size=0, is_dir=True)
        assert entries_match(d, d, 1)
        assert not entries_match(d, self._f(size=0), 1)


class TestFilesEqual:
    """Tests for content comparison across backends."""

    def test_hash_comparison(self):
        fs1, fs2 = MemoryFs("/1"), MemoryFs("/2")
        fs1.write("a", "same", T)
        fs2.write("a", "same", T + 1)
        fs2.write("b", "diff", T)
        fs1.write("b", "DIFF", T)
        assert files_equal(fs1, fs2, "a")
        assert not files_equal(fs1, fs2, "b")

    def test_byte_comparison_without_hashes(self, tmp_path):
        fs1 = MemoryFs("/1", hash_type=None)
        fs2 = LocalFs(tmp_path / "two")
        fs1.write("a", "content", T)
        (tmp_path / "two" / "a").write_text("content")
        (tmp_path / "two" / "b").write_text("xxxxxxx")
        fs1.write("b", "yyyyyyy", T)
        assert files_equal(fs1, fs2, "a")
        assert not files_equal(fs1, fs2, "b")

    def test_missing_side(self):
        fs1, fs2 = MemoryFs("/1"), MemoryFs("/2")
        fs1.write("a", "1", T)
        assert not files_equal(fs1, fs2, "a")


class TestRemoveEmptyDirs:
    """Tests for remove_empty_dirs()."""

    def test_removes_nested_empty_dirs_only(self, tmp_path):
        fs = LocalFs(tmp_path / "root")
        root = tmp_path / "root"
        (root / "empty" / "deeper").mkdir(parents=True)
        (root / "full" / "sub").mkdir(parents=True)
        (root / "full" / "sub" / "f.txt").write_text("x")

        removed = remove_empty_dirs(fs)

        assert sorted(removed) == ["empty", "empty/deeper"]
        assert not (root / "empty").exists()
        assert (root / "full" / "sub" / "f.txt").exists()
        assert root.exists()

    def test_memory_backend(self):
        fs = MemoryFs("/m")
        fs.mkdir("a/b")
        fs.put("c/file", io.BytesIO(b"1"), T)
        assert remove_empty_dirs(fs) == ["a/b", "a"]
        assert fs.paths() == ["c/file"]
