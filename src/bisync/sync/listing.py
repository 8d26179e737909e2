"""Listing persistence layer.

A listing is a point-in-time snapshot of one side of a sync: an ordered
mapping from relative path to ``FileInfo``.  Listings are stored as
line-oriented text files in the session work directory:

    # bisync listing v1
    - 109 md5:294d25b294ff26a5243dba914ac3fbf7 - 2001-01-02T00:00:00.000000000+0000 "file1.txt"
    d 0 - - 2001-01-02T00:00:00.000000000+0000 "subdir"

Columns are flags, size, hash, id (unused), modification time and the
JSON-quoted path.

Key design choices:

* **Atomic writes** -- ``save_listing()`` writes to a temp file then calls
  ``os.replace()`` so a crash never leaves a half-written listing.
* **Deterministic bytes** -- entries are sorted and the header carries no
  timestamp, so two identical listings are byte-identical.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator

from bisync.backends.base import FileInfo
from bisync.errors import ListingError

logger = logging.getLogger(__name__)

LISTING_HEADER = "# bisync listing v1"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NS_PER_SEC = 1_000_000_000
_LINE_PATTERN = re.compile(
    r'^(?P<flags>[-d]) +(?P<size>-?\d+) (?P<hash>\S+) (?P<id>\S+) '
    r'(?P<time>\S+) (?P<name>".*")$'
)
_TIME_PATTERN = re.compile(
    r"^(\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d)\.(\d{9})([+-]\d{4})$"
)


class Listing:
    """Ordered mapping of relative path to ``FileInfo``.

    Args:
        entries: Initial entries.  Later duplicates replace earlier ones.
    """

    def __init__(self, entries: Iterable[FileInfo] = ()) -> None:
        self._entries: dict[str, FileInfo] = {}
        for info in entries:
            self._entries[info.path] = info

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Listing):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"Listing({len(self._entries)} entries)"

    @property
    def empty(self) -> bool:
        return not self._entries

    def get(self, path: str) -> FileInfo | None:
        return self._entries.get(path)

    def put(self, info: FileInfo) -> None:
        """Insert or replace the entry for ``info.path``."""
        self._entries[info.path] = info

    def remove(self, path: str) -> None:
        """Remove *path*.  No-op if not present."""
        self._entries.pop(path, None)

    def entries(self) -> list[FileInfo]:
        """All entries sorted by path."""
        return [self._entries[p] for p in sorted(self._entries)]

    def files(self) -> list[str]:
        """Sorted paths of file entries."""
        return [p for p in self if not self._entries[p].is_dir]

    def dirs(self) -> list[str]:
        """Sorted paths of directory entries."""
        return [p for p in self if self._entries[p].is_dir]

    def copy(self) -> Listing:
        return Listing(self._entries.values())


# ----------------------------------------------------------------------
# Time formatting
# ----------------------------------------------------------------------


def format_time(mtime_ns: int) -> str:
    """Format nanoseconds since the epoch as ``YYYY-MM-DDTHH:MM:SS.nnnnnnnnn+0000``."""
    secs, nanos = divmod(mtime_ns, _NS_PER_SEC)
    stamp = _EPOCH + timedelta(seconds=secs)
    return f"{stamp:%Y-%m-%dT%H:%M:%S}.{nanos:09d}+0000"


def parse_time(value: str) -> int:
    """Inverse of ``format_time``; accepts any numeric UTC offset.

    Raises:
        ValueError: If *value* is not in the listing time format.
    """
    match = _TIME_PATTERN.match(value)
    if not match:
        raise ValueError(f"bad listing time: {value!r}")
    stamp = datetime.strptime(
        match.group(1) + match.group(3), "%Y-%m-%dT%H:%M:%S%z"
    )
    secs = (stamp - _EPOCH) // timedelta(seconds=1)
    return secs * _NS_PER_SEC + int(match.group(2))


# ----------------------------------------------------------------------
# Serialisation
# ----------------------------------------------------------------------


def format_entry(info: FileInfo) -> str:
    """Render one listing line (without the trailing newline)."""
    return " ".join(
        [
            info.flags,
            str(info.size),
            info.hash or "-",
            "-",
            format_time(info.mtime_ns),
            json.dumps(info.path, ensure_ascii=False),
        ]
    )


def parse_entry(line: str) -> FileInfo:
    """Parse one listing line.

    Raises:
        ValueError: If the line is malformed.
    """
    match = _LINE_PATTERN.match(line)
    if not match:
        raise ValueError(f"bad listing line: {line!r}")
    path = json.loads(match.group("name"))
    if not isinstance(path, str) or not path:
        raise ValueError(f"bad listing path: {line!r}")
    digest = match.group("hash")
    return FileInfo(
        path=path,
        size=int(match.group("size")),
        mtime_ns=parse_time(match.group("time")),
        hash=None if digest == "-" else digest,
        is_dir=match.group("flags") == "d",
    )


def load_listing(path: Path) -> Listing:
    """Load a listing file.

    Args:
        path: Listing file path.

    Returns:
        The parsed ``Listing``.

    Raises:
        ListingError: If the file is missing, has no valid header, or
            contains a malformed line.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            lines = fh.read().splitlines()
    except FileNotFoundError:
        raise ListingError(f"listing not found: {path}") from None
    except OSError as exc:
        raise ListingError(f"cannot read listing {path}: {exc}") from exc

    if not lines or lines[0] != LISTING_HEADER:
        raise ListingError(f"listing has no valid header: {path}")

    listing = Listing()
    for lineno, line in enumerate(lines[1:], start=2):
        if not line or line.startswith("#"):
            continue
        try:
            info = parse_entry(line)
        except ValueError as exc:
            raise ListingError(f"{path}:{lineno}: {exc}") from exc
        if info.path in listing:
            raise ListingError(
                f"{path}:{lineno}: duplicate path {info.path!r}"
            )
        listing.put(info)
    logger.debug("Loaded %d entries from %s", len(listing), path)
    return listing


def save_listing(listing: Listing, path: Path) -> None:
    """Persist *listing* to *path* atomically.

    Writes to a temporary file in the same directory then atomically
    replaces the target.  Creates the parent directory if needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=path.name + ".", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(LISTING_HEADER + "\n")
            for info in listing.entries():
                fh.write(format_entry(info) + "\n")
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.debug("Saved %d entries to %s", len(listing), path)


# ----------------------------------------------------------------------
# File helpers
# ----------------------------------------------------------------------


def copy_file_if_exists(src: Path, dst: Path) -> None:
    """Copy *src* over *dst* via a temp file, if *src* exists."""
    if not src.exists():
        return
    tmp = dst.with_name(dst.name + ".tmp")
    shutil.copyfile(src, tmp)
    os.replace(tmp, dst)


def mark_failed(path: Path) -> None:
    """Rename *path* to ``<path>-err`` so it can no longer be used."""
    if not path.exists():
        return
    failed = path.with_name(path.name + "-err")
    os.replace(path, failed)
    logger.debug("Marked listing failed: %s", failed)


def remove_if_exists(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
