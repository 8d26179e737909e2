"""Delta detection: classify each path of one side against its prior listing.

The detector captures a fresh listing of a backend, persists it to the
side's ``-new`` file, then compares it with the prior listing entry by
entry.  The result is a ``DeltaSet`` consumed by the safety guard and by
the queue builder.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
from pathlib import Path, PurePosixPath

from bisync.backends.base import Backend, FileInfo
from bisync.backends.operations import hashes_comparable
from bisync.config_schema import BisyncOptions
from bisync.errors import ListingError

from .listing import Listing, load_listing, save_listing
from .models import Delta, DeltaSet

logger = logging.getLogger(__name__)

_DELTA_MESSAGES = {
    Delta.NEW: "File is new",
    Delta.NEWER: "File is newer",
    Delta.OLDER: "File is OLDER",
    Delta.SIZE: "File size is different",
    Delta.HASH: "File hash is different",
    Delta.DELETED: "File was deleted",
}


def log_item(side: str, message: str, path: str) -> None:
    """Log one per-path decision in the aligned column style."""
    logger.info("- %-9s%-29s- %s", side, message, path)


def filters_digest(patterns: list[str]) -> str:
    """MD5 of the exclude patterns, one per line, in the given order."""
    return hashlib.md5("\n".join(patterns).encode("utf-8")).hexdigest()


def is_excluded(path: str, patterns: list[str]) -> bool:
    """``True`` if *path* or any of its parent directories matches."""
    if not patterns:
        return False
    candidates = [path]
    candidates.extend(p.as_posix() for p in PurePosixPath(path).parents)
    return any(
        fnmatch.fnmatchcase(candidate, pattern)
        for candidate in candidates
        if candidate != "."
        for pattern in patterns
    )


def find_check_files(listing: Listing, filename: str) -> frozenset[str]:
    """File paths in *listing* whose base name is *filename*."""
    return frozenset(
        path
        for path in listing.files()
        if PurePosixPath(path).name == filename
    )


class DeltaDetector:
    """Capture listings and classify changes for one run.

    Args:
        options: Run options (exclude patterns, precision handling,
            check file name, empty-directory tracking).
    """

    def __init__(self, options: BisyncOptions) -> None:
        self.options = options

    # ------------------------------------------------------------------
    # Listing capture
    # ------------------------------------------------------------------

    def capture(self, fs: Backend, dest: Path | None = None) -> Listing:
        """Enumerate *fs* into a filtered ``Listing``.

        Directories are only included when empty directories are being
        tracked.  When *dest* is given the listing is saved there.
        """
        listing = Listing()
        for info in fs.list():
            if info.is_dir and not self.options.create_empty_src_dirs:
                continue
            if is_excluded(info.path, self.options.exclude):
                continue
            listing.put(info)
        if dest is not None:
            save_listing(listing, dest)
        return listing

    def check_listing(self, listing: Listing, side: str) -> None:
        """Refuse to sync against an empty side unless forced.

        Raises:
            ListingError: If *listing* is empty and ``force`` is off.
        """
        if listing.empty and not self.options.force:
            raise ListingError(
                f"empty current {side} listing, "
                "cannot sync to an empty directory"
            )

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def compare(
        self, prior: FileInfo, current: FileInfo, precision: int | None
    ) -> Delta | None:
        """Return why *current* differs from *prior*, or ``None``."""
        if prior.is_dir or current.is_dir:
            return None if prior.is_dir == current.is_dir else Delta.SIZE
        if prior.size != current.size:
            return Delta.SIZE
        if precision is not None:
            diff = current.mtime_ns - prior.mtime_ns
            if abs(diff) >= max(precision, 1):
                return Delta.NEWER if diff > 0 else Delta.OLDER
        if (
            self.options.compare_hash or precision is None
        ) and hashes_comparable(prior, current):
            if prior.hash != current.hash:
                return Delta.HASH
        return None

    def find_deltas(
        self, fs: Backend, side: str, prior_path: Path, new_path: Path
    ) -> DeltaSet:
        """Capture *fs* and classify it against the listing at *prior_path*.

        Args:
            fs: Backend for this side.
            side: ``"Path1"`` or ``"Path2"``.
            prior_path: Prior listing file.
            new_path: Where to persist the fresh listing.

        Returns:
            The side's ``DeltaSet``.

        Raises:
            ListingError: If the prior listing cannot be loaded or the
                current listing is empty without ``force``.
            OSError: If the backend cannot be enumerated.
        """
        return self.detect(fs, side, load_listing(prior_path), new_path)

    def detect(
        self, fs: Backend, side: str, prior: Listing, new_path: Path
    ) -> DeltaSet:
        """Like ``find_deltas()`` with the prior listing already loaded."""
        current = self.capture(fs, new_path)
        self.check_listing(current, side)
        return self.classify(prior, current, side, fs.precision)

    def classify(
        self,
        prior: Listing,
        current: Listing,
        side: str,
        precision: int | None,
    ) -> DeltaSet:
        """Build a ``DeltaSet`` from two already loaded listings."""
        deltas: dict[str, Delta] = {}
        created: set[str] = set()
        updated: set[str] = set()
        deleted: set[str] = set()
        unchanged: set[str] = set()
        found_same = False

        for path in current:
            info = current.get(path)
            old = prior.get(path)
            if old is None:
                deltas[path] = Delta.NEW
                created.add(path)
                continue
            reason = self.compare(old, info, precision)
            if reason is None:
                unchanged.add(path)
                if not info.is_dir:
                    found_same = True
            else:
                deltas[path] = reason
                updated.add(path)

        for path in prior:
            if path not in current:
                deltas[path] = Delta.DELETED
                deleted.add(path)

        prior_count = len(prior.files())
        if prior_count == 0:
            found_same = True

        for path in sorted(deltas):
            entry = current.get(path) or prior.get(path)
            message = _DELTA_MESSAGES[deltas[path]]
            if entry is not None and entry.is_dir:
                message = message.replace("File", "Directory", 1)
            log_item(side, message, path)

        check_files = find_check_files(current, self.options.check_filename)

        ds = DeltaSet(
            side=side,
            prior=prior,
            current=current,
            deltas=deltas,
            created=frozenset(created),
            updated=frozenset(updated),
            deleted=frozenset(deleted),
            unchanged=frozenset(unchanged),
            check_files=check_files,
            found_same=found_same,
            prior_count=prior_count,
        )
        if ds.empty:
            logger.info("No changes found on %s", side)
        else:
            logger.info(ds.stats())
        return ds
