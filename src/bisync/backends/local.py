"""Backend for a directory tree on the local filesystem."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable

from .base import Backend, FileInfo, clean_relative_path

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class LocalFs:
    """``Backend`` rooted at a local directory.

    Symlinks are skipped during enumeration.

    Args:
        root: Directory to sync.  Created if it does not exist.
        precision: Modification time precision in nanoseconds.
        hashes: Compute MD5 hashes while listing.  Off by default
            because it reads every file.
    """

    name = "local"

    def __init__(
        self,
        root: str | Path,
        precision: int | None = 1,
        hashes: bool = False,
    ) -> None:
        self._root_path = Path(root).expanduser().resolve()
        self._root_path.mkdir(parents=True, exist_ok=True)
        self.root = self._root_path.as_posix()
        self._precision = precision
        self._hashes = hashes

    @property
    def precision(self) -> int | None:
        return self._precision

    @property
    def hash_type(self) -> str | None:
        return "md5" if self._hashes else None

    # ------------------------------------------------------------------
    # Backend protocol
    # ------------------------------------------------------------------

    def list(self) -> list[FileInfo]:
        infos: list[FileInfo] = []
        for dirpath, dirnames, filenames in os.walk(self._root_path):
            base = Path(dirpath)
            dirnames.sort()
            for name in list(dirnames):
                full = base / name
                if full.is_symlink():
                    dirnames.remove(name)
                    continue
                infos.append(self._info(full))
            for name in sorted(filenames):
                full = base / name
                if full.is_symlink() or not full.is_file():
                    continue
                if name.startswith(".bisync-") and name.endswith(
                    ".partial"
                ):
                    continue
                infos.append(self._info(full))
        return sorted(infos, key=lambda i: i.path)

    def stat(self, path: str) -> FileInfo | None:
        full = self._resolve(path)
        if not full.exists() or full.is_symlink():
            return None
        return self._info(full)

    def open(self, path: str) -> BinaryIO:
        return open(self._resolve(path), "rb")

    def put(
        self, path: str, stream: BinaryIO, mtime_ns: int
    ) -> FileInfo:
        full = self._resolve(path)

        def _fill(fd: int, tmp_path: str) -> None:
            with os.fdopen(fd, "wb") as fh:
                shutil.copyfileobj(stream, fh, _CHUNK_SIZE)
            os.utime(tmp_path, ns=(mtime_ns, mtime_ns))

        self._write_atomically(full, _fill)
        return self._info(full)

    def move(self, src: str, dst: str) -> FileInfo:
        src_full = self._resolve(src)
        dst_full = self._resolve(dst)
        if not src_full.exists():
            raise FileNotFoundError(f"{self.root}: {src}")
        dst_full.parent.mkdir(parents=True, exist_ok=True)
        os.replace(src_full, dst_full)
        return self._info(dst_full)

    def remove(self, path: str) -> None:
        os.remove(self._resolve(path))

    def mkdir(self, path: str) -> FileInfo:
        full = self._resolve(path)
        full.mkdir(parents=True, exist_ok=True)
        return self._info(full)

    def rmdir(self, path: str) -> None:
        os.rmdir(self._resolve(path))

    # ------------------------------------------------------------------
    # Server-side copy capability
    # ------------------------------------------------------------------

    def can_server_side_copy(self, src_fs: Backend) -> bool:
        return isinstance(src_fs, LocalFs)

    def server_side_copy(
        self, src_fs: Backend, src: str, dst: str
    ) -> FileInfo:
        """Copy with ``shutil.copy2``, which keeps the modification time
        and uses the kernel's file copy where the platform has one.
        """
        if not isinstance(src_fs, LocalFs):
            raise TypeError(
                f"cannot copy natively from {type(src_fs).__name__}"
            )
        src_full = src_fs._resolve(src)
        if not src_full.is_file():
            raise FileNotFoundError(f"{src_fs.root}: {src}")
        full = self._resolve(dst)

        def _fill(fd: int, tmp_path: str) -> None:
            os.close(fd)
            shutil.copy2(src_full, tmp_path)

        self._write_atomically(full, _fill)
        return self._info(full)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        """Map a relative path to an absolute one under the root."""
        return self._root_path / clean_relative_path(path)

    def _write_atomically(
        self, full: Path, fill: Callable[[int, str], None]
    ) -> None:
        """Have *fill* populate a temp file beside *full*, then rename it
        into place.  The temp file is removed if anything fails.
        """
        full.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(full.parent), prefix=".bisync-", suffix=".partial"
        )
        try:
            fill(fd, tmp_path)
            os.replace(tmp_path, full)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _info(self, full: Path) -> FileInfo:
        st = full.stat()
        rel = full.relative_to(self._root_path).as_posix()
        if full.is_dir():
            return FileInfo(
                path=rel, size=0, mtime_ns=st.st_mtime_ns, is_dir=True
            )
        digest = None
        if self._hashes:
            digest = "md5:" + _md5_file(full)
        return FileInfo(
            path=rel, size=st.st_size, mtime_ns=st.st_mtime_ns, hash=digest
        )


def _md5_file(path: Path) -> str:
    h = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()
