"""Storage backends for bisync.

Each side of a sync is a ``Backend``.  ``create_backend()`` maps a
command-line remote string to an instance:

- ``/some/dir`` or ``local:/some/dir`` -> ``LocalFs``
- ``memory:name`` -> ``MemoryFs`` (only useful when embedding)
"""

from __future__ import annotations

from typing import Callable

from .base import (
    MODTIME_NOT_SUPPORTED,
    Backend,
    FileInfo,
    SupportsServerSideCopy,
    fs_path,
)
from .local import LocalFs
from .memory import MemoryFs

_BACKEND_MAP: dict[str, Callable[[str, bool], Backend]] = {
    "local": lambda root, hashes: LocalFs(root, hashes=hashes),
    # in-memory trees always carry MD5 hashes
    "memory": lambda root, hashes: MemoryFs(root),
}


def create_backend(remote: str, hashes: bool = False) -> Backend:
    """Create a backend for a ``"<type>:<root>"`` remote string.

    Strings without a known type prefix are treated as local paths, so
    Windows drive letters (``C:\\data``) keep working.

    Args:
        remote: Remote string from the command line.
        hashes: Ask the backend to report content hashes while listing.

    Returns:
        A ``Backend`` instance.

    Raises:
        ValueError: If the remote string is empty.
    """
    if not remote:
        raise ValueError("Remote path must not be empty")
    kind, sep, root = remote.partition(":")
    if sep and kind in _BACKEND_MAP and len(kind) > 1:
        return _BACKEND_MAP[kind](root or "/", hashes)
    return LocalFs(remote, hashes=hashes)


__all__ = [
    "MODTIME_NOT_SUPPORTED",
    "Backend",
    "FileInfo",
    "LocalFs",
    "MemoryFs",
    "SupportsServerSideCopy",
    "create_backend",
    "fs_path",
]
