"""In-process backend holding files in a dict.

Used by the test-suite and by embedders that want to run the engine
without touching disk.  Directories are implicit (any parent of a file)
unless created explicitly with ``mkdir``.
"""

from __future__ import annotations

import hashlib
import io
import threading
import time
from typing import BinaryIO, Callable

from .base import Backend, FileInfo, clean_relative_path


class MemoryFs:
    """Dict-backed ``Backend`` implementation.

    Args:
        root: Identity of this tree (used for session naming).
        precision: Modification time precision in nanoseconds, or
            ``None`` to emulate a backend without modtime support.
        hash_type: ``"md5"`` (default) or ``None`` to omit hashes.
        clock: Returns "now" in nanoseconds for writes without an
            explicit mtime.
    """

    name = "memory"

    def __init__(
        self,
        root: str = "/",
        precision: int | None = 1,
        hash_type: str | None = "md5",
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self.root = root
        self._precision = precision
        self._hash_type = hash_type
        self._clock = clock
        self._files: dict[str, tuple[bytes, int]] = {}
        self._dirs: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def precision(self) -> int | None:
        return self._precision

    @property
    def hash_type(self) -> str | None:
        return self._hash_type

    # ------------------------------------------------------------------
    # Convenience helpers (not part of the Backend protocol)
    # ------------------------------------------------------------------

    def write(
        self, path: str, data: bytes | str, mtime_ns: int | None = None
    ) -> FileInfo:
        """Create or overwrite *path* with *data*."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if mtime_ns is None:
            mtime_ns = self._clock()
        return self.put(path, io.BytesIO(data), mtime_ns)

    def read(self, path: str) -> bytes:
        """Return the content of *path*."""
        with self.open(path) as fh:
            return fh.read()

    def exists(self, path: str) -> bool:
        return self.stat(path) is not None

    def paths(self) -> list[str]:
        """Sorted list of file paths (directories excluded)."""
        with self._lock:
            return sorted(self._files)

    # ------------------------------------------------------------------
    # Backend protocol
    # ------------------------------------------------------------------

    def list(self) -> list[FileInfo]:
        with self._lock:
            infos = [
                self._file_info(path, data, mtime)
                for path, (data, mtime) in self._files.items()
            ]
            infos.extend(
                FileInfo(path=d, size=0, mtime_ns=mtime, is_dir=True)
                for d, mtime in self._all_dirs().items()
            )
        return sorted(infos, key=lambda i: i.path)

    def stat(self, path: str) -> FileInfo | None:
        path = clean_relative_path(path)
        with self._lock:
            if path in self._files:
                data, mtime = self._files[path]
                return self._file_info(path, data, mtime)
            dirs = self._all_dirs()
            if path in dirs:
                return FileInfo(
                    path=path, size=0, mtime_ns=dirs[path], is_dir=True
                )
        return None

    def open(self, path: str) -> BinaryIO:
        path = clean_relative_path(path)
        with self._lock:
            if path not in self._files:
                raise FileNotFoundError(f"{self.root}: {path}")
            return io.BytesIO(self._files[path][0])

    def put(
        self, path: str, stream: BinaryIO, mtime_ns: int
    ) -> FileInfo:
        path = clean_relative_path(path)
        data = stream.read()
        with self._lock:
            if path in self._all_dirs():
                raise IsADirectoryError(f"{self.root}: {path}")
            self._files[path] = (data, mtime_ns)
            return self._file_info(path, data, mtime_ns)

    def move(self, src: str, dst: str) -> FileInfo:
        src = clean_relative_path(src)
        dst = clean_relative_path(dst)
        with self._lock:
            if src not in self._files:
                raise FileNotFoundError(f"{self.root}: {src}")
            data, mtime = self._files.pop(src)
            self._files[dst] = (data, mtime)
            return self._file_info(dst, data, mtime)

    def remove(self, path: str) -> None:
        path = clean_relative_path(path)
        with self._lock:
            if path not in self._files:
                raise FileNotFoundError(f"{self.root}: {path}")
            del self._files[path]

    def mkdir(self, path: str) -> FileInfo:
        path = clean_relative_path(path)
        with self._lock:
            if path in self._files:
                raise FileExistsError(f"{self.root}: {path}")
            existing = self._all_dirs()
            mtime = existing.get(path)
            if mtime is None:
                mtime = self._clock()
                parts = path.split("/")
                for i in range(1, len(parts) + 1):
                    parent = "/".join(parts[:i])
                    if parent in self._files:
                        raise FileExistsError(f"{self.root}: {parent}")
                    if parent not in existing:
                        self._dirs[parent] = mtime
            return FileInfo(path=path, size=0, mtime_ns=mtime, is_dir=True)

    def rmdir(self, path: str) -> None:
        path = clean_relative_path(path)
        with self._lock:
            dirs = self._all_dirs()
            if path not in dirs:
                raise FileNotFoundError(f"{self.root}: {path}")
            prefix = path + "/"
            if any(p.startswith(prefix) for p in self._files) or any(
                d.startswith(prefix) for d in dirs
            ):
                raise OSError(f"Directory not empty: {self.root}: {path}")
            self._dirs.pop(path, None)

    # ------------------------------------------------------------------
    # Server-side copy capability
    # ------------------------------------------------------------------

    def can_server_side_copy(self, src_fs: Backend) -> bool:
        return isinstance(src_fs, MemoryFs)

    def server_side_copy(
        self, src_fs: Backend, src: str, dst: str
    ) -> FileInfo:
        if not isinstance(src_fs, MemoryFs):
            raise TypeError(
                f"cannot copy natively from {type(src_fs).__name__}"
            )
        src = clean_relative_path(src)
        with src_fs._lock:
            if src not in src_fs._files:
                raise FileNotFoundError(f"{src_fs.root}: {src}")
            data, mtime = src_fs._files[src]
        return self.put(dst, io.BytesIO(data), mtime)

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _all_dirs(self) -> dict[str, int]:
        """Explicit directories plus every implicit parent of a file."""
        dirs = dict(self._dirs)
        for path, (_, mtime) in self._files.items():
            parts = path.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                dirs.setdefault("/".join(parts[:i]), mtime)
        return dirs

    def _file_info(self, path: str, data: bytes, mtime: int) -> FileInfo:
        digest = None
        if self._hash_type == "md5":
            digest = "md5:" + hashlib.md5(data).hexdigest()
        return FileInfo(
            path=path, size=len(data), mtime_ns=mtime, hash=digest
        )
