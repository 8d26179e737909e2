"""Generic operations built on top of the ``Backend`` protocol.

These helpers pick the best available strategy for each backend pair:
a server-side copy when the destination advertises
``SupportsServerSideCopy`` for the source, otherwise a streamed copy.
"""

from __future__ import annotations

import logging

from .base import Backend, FileInfo, SupportsServerSideCopy

logger = logging.getLogger(__name__)

_COMPARE_CHUNK = 64 * 1024


def copy_file(
    src_fs: Backend,
    dst_fs: Backend,
    src: str,
    dst: str | None = None,
) -> FileInfo:
    """Copy one file between (possibly different) backends.

    The modification time of the source is preserved.

    Args:
        src_fs: Backend holding the source file.
        dst_fs: Backend receiving the copy.
        src: Source path.
        dst: Destination path; defaults to *src*.

    Returns:
        Metadata of the written destination file.

    Raises:
        FileNotFoundError: If the source does not exist.
        OSError: On any backend failure.
    """
    dst = dst or src
    if isinstance(
        dst_fs, SupportsServerSideCopy
    ) and dst_fs.can_server_side_copy(src_fs):
        logger.debug("Server-side copy %s -> %s", src, dst)
        return dst_fs.server_side_copy(src_fs, src, dst)

    info = src_fs.stat(src)
    if info is None:
        raise FileNotFoundError(f"{src_fs.root}: {src}")
    logger.debug("Streaming copy %s -> %s", src, dst)
    with src_fs.open(src) as stream:
        return dst_fs.put(dst, stream, info.mtime_ns)


def hashes_comparable(a: FileInfo, b: FileInfo) -> bool:
    """``True`` if both entries carry a hash of the same type."""
    return (
        a.hash is not None
        and b.hash is not None
        and a.hash_type is not None
        and a.hash_type == b.hash_type
    )


def entries_match(
    a: FileInfo, b: FileInfo, precision: int | None
) -> bool:
    """Decide from metadata alone whether two entries hold the same data.

    Size must match.  A common hash decides when available; otherwise the
    modification times must agree within *precision* nanoseconds.  With
    no hash and no modtime support the size alone decides.
    """
    if a.is_dir or b.is_dir:
        return a.is_dir == b.is_dir
    if a.size != b.size:
        return False
    if hashes_comparable(a, b):
        return a.hash == b.hash
    if precision is None:
        return True
    return abs(a.mtime_ns - b.mtime_ns) < max(precision, 1)


def files_equal(
    fs1: Backend, fs2: Backend, path1: str, path2: str | None = None
) -> bool:
    """Decide whether *path1* on *fs1* and *path2* on *fs2* are identical.

    Uses sizes and a common hash type when possible, and falls back to a
    streamed byte comparison otherwise.
    """
    path2 = path2 or path1
    info1 = fs1.stat(path1)
    info2 = fs2.stat(path2)
    if info1 is None or info2 is None:
        return False
    if info1.is_dir or info2.is_dir:
        return info1.is_dir and info2.is_dir
    if info1.size != info2.size:
        return False
    if hashes_comparable(info1, info2):
        return info1.hash == info2.hash

    with fs1.open(path1) as fh1, fs2.open(path2) as fh2:
        while True:
            chunk1 = fh1.read(_COMPARE_CHUNK)
            chunk2 = fh2.read(_COMPARE_CHUNK)
            if chunk1 != chunk2:
                return False
            if not chunk1:
                return True


def remove_empty_dirs(fs: Backend) -> list[str]:
    """Remove every empty directory under the root, deepest first.

    A directory whose only contents are empty directories is removed as
    well.  The root itself is never removed.

    Returns:
        The removed directory paths.
    """
    entries = fs.list()
    files = [e.path for e in entries if not e.is_dir]
    dirs = sorted(
        (e.path for e in entries if e.is_dir),
        key=lambda p: (-p.count("/"), p),
    )
    occupied: set[str] = set()
    for path in files:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            occupied.add("/".join(parts[:i]))

    removed: list[str] = []
    for path in dirs:
        if path in occupied:
            continue
        prefix = path + "/"
        if any(
            d.startswith(prefix) and d not in removed
            for d in dirs
        ):
            # A child directory survived, so this one is not empty.
            continue
        fs.rmdir(path)
        logger.debug("Removed empty directory %s", path)
        removed.append(path)
    return removed
