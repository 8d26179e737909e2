"""Backend capability interface consumed by the sync engine.

A backend is anything that can enumerate, read, write, move and delete
files under a root.  The engine only ever talks to backends through the
``Backend`` protocol below; optional abilities are modelled as separate
runtime-checkable protocols that callers query with ``isinstance``.

Paths handed to a backend are always relative POSIX paths
(``"dir/file.txt"``); backends reject absolute paths and ``..`` segments.
Failures are reported with ``OSError`` subclasses
(``FileNotFoundError``, ``IsADirectoryError``, ...).
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import BinaryIO, Protocol, runtime_checkable

from pydantic import BaseModel

# Precision value meaning "this backend cannot store modification times".
MODTIME_NOT_SUPPORTED = None


class FileInfo(BaseModel):
    """Metadata for one entry of a listing.

    Attributes:
        path: Side-relative POSIX path.
        size: Size in bytes (0 for directories).
        mtime_ns: Modification time in nanoseconds since the epoch.
        hash: Self-describing hash (``"md5:<hex>"``), or ``None``.
        is_dir: ``True`` for directory entries.
    """

    path: str
    size: int
    mtime_ns: int
    hash: str | None = None
    is_dir: bool = False

    model_config = {"frozen": True}

    @property
    def flags(self) -> str:
        """Listing flag column: ``"d"`` for directories, ``"-"`` for files."""
        return "d" if self.is_dir else "-"

    @property
    def hash_type(self) -> str | None:
        """Hash algorithm prefix (e.g. ``"md5"``), or ``None``."""
        if not self.hash or ":" not in self.hash:
            return None
        return self.hash.split(":", 1)[0]

    def renamed(self, path: str) -> FileInfo:
        """Return a copy of this entry under a different path."""
        return self.model_copy(update={"path": path})


@runtime_checkable
class Backend(Protocol):
    """Uniform filesystem-like interface for one side of a sync."""

    name: str
    root: str

    @property
    def precision(self) -> int | None:
        """Modification time granularity in nanoseconds.

        ``MODTIME_NOT_SUPPORTED`` (``None``) if times cannot be stored.
        """
        ...  # pragma: no cover

    @property
    def hash_type(self) -> str | None:
        """Hash algorithm reported in listings, or ``None``."""
        ...  # pragma: no cover

    def list(self) -> list[FileInfo]:
        """Enumerate the whole tree, sorted by path."""
        ...  # pragma: no cover

    def stat(self, path: str) -> FileInfo | None:
        """Return metadata for *path*, or ``None`` if it does not exist."""
        ...  # pragma: no cover

    def open(self, path: str) -> BinaryIO:
        """Open *path* for binary reading."""
        ...  # pragma: no cover

    def put(
        self, path: str, stream: BinaryIO, mtime_ns: int
    ) -> FileInfo:
        """Write *stream* to *path*, creating parents, and set its mtime."""
        ...  # pragma: no cover

    def move(self, src: str, dst: str) -> FileInfo:
        """Rename *src* to *dst* within this backend."""
        ...  # pragma: no cover

    def remove(self, path: str) -> None:
        """Delete the file at *path*."""
        ...  # pragma: no cover

    def mkdir(self, path: str) -> FileInfo:
        """Create directory *path* (and parents).  No-op if it exists."""
        ...  # pragma: no cover

    def rmdir(self, path: str) -> None:
        """Remove the empty directory at *path*."""
        ...  # pragma: no cover


@runtime_checkable
class SupportsServerSideCopy(Protocol):
    """Backends that can copy without streaming bytes through bisync."""

    def can_server_side_copy(self, src_fs: Backend) -> bool:
        """Return ``True`` if objects of *src_fs* can be copied natively."""
        ...  # pragma: no cover

    def server_side_copy(
        self, src_fs: Backend, src: str, dst: str
    ) -> FileInfo:
        """Copy *src* on *src_fs* to *dst* on this backend."""
        ...  # pragma: no cover


def fs_path(fs: Backend) -> str:
    """Return the ``"<name>:<root>"`` identity string of a backend."""
    return f"{fs.name}:{fs.root}"


def clean_relative_path(path: str) -> str:
    """Validate and normalise a side-relative path.

    Args:
        path: Relative POSIX path.

    Returns:
        The normalised path without leading ``./`` or trailing ``/``.

    Raises:
        ValueError: If the path is empty, absolute, or escapes the root.
    """
    if not path or path.startswith("/"):
        raise ValueError(f"Path must be relative and non-empty: {path!r}")
    parts = [p for p in PurePosixPath(path).parts if p != "."]
    if not parts or ".." in parts:
        raise ValueError(f"Path escapes the backend root: {path!r}")
    return "/".join(parts)
