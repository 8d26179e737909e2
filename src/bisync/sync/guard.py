"""Safety guard: predicates evaluated before any backend is mutated.

Each check raises when it trips.  ``SafetyAbort`` leaves the prior
listings intact so the run can be retried (with ``--force`` if the
change was intended).  ``AccessCheckError`` signals that a side may be
mounted wrong or unreachable and is treated as critical by the engine.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from bisync.config_schema import BisyncOptions
from bisync.errors import AccessCheckError, SafetyAbort

from .models import DeltaSet

logger = logging.getLogger(__name__)


def excess_deletes(ds: DeltaSet, options: BisyncOptions) -> bool:
    """``True`` if *ds* deletes more files than the configured limits."""
    deleted = ds.deleted_files
    if deleted == 0:
        return False
    if (
        options.max_delete_count is not None
        and deleted > options.max_delete_count
    ):
        return True
    if ds.prior_count == 0:
        return False
    return deleted * 100 / ds.prior_count > options.max_delete


def all_changed(ds: DeltaSet) -> bool:
    """``True`` if the prior listing had files and every one changed."""
    return not ds.found_same


def check_access(
    files1: Iterable[str], files2: Iterable[str], filename: str
) -> None:
    """Require the same, non-empty set of check files on both sides.

    Raises:
        AccessCheckError: On zero check files, differing counts, or a
            check file present on one side only.
    """
    set1 = set(files1)
    set2 = set(files2)
    ok = True
    if not set1 or not set2 or len(set1) != len(set2):
        logger.error(
            "%s files counts differ or are zero: Path1 %d, Path2 %d",
            filename,
            len(set1),
            len(set2),
        )
        ok = False
    for path in sorted(set1 - set2):
        logger.error("Check file missing on Path2: %s", path)
        ok = False
    for path in sorted(set2 - set1):
        logger.error("Check file missing on Path1: %s", path)
        ok = False
    if not ok:
        raise AccessCheckError("check file check failed")
    logger.info("Found %d matching %s files on both paths", len(set1), filename)


def check_safety(
    ds1: DeltaSet, ds2: DeltaSet, options: BisyncOptions
) -> None:
    """Run every guard in order.

    Raises:
        AccessCheckError: If access checking is enabled and fails.
        SafetyAbort: If too many deletes are pending or every file
            changed on one side (skipped with ``force``).
    """
    if options.check_access:
        check_access(
            ds1.check_files, ds2.check_files, options.check_filename
        )
    if options.force:
        return

    tripped = False
    for ds in (ds1, ds2):
        if excess_deletes(ds, options):
            logger.error(
                "Excessive deletes on %s: %d of %d files, limit %d%%",
                ds.side,
                ds.deleted_files,
                ds.prior_count,
                options.max_delete,
            )
            tripped = True
    if tripped:
        raise SafetyAbort(
            "too many deletes, safety abort (use --force to override)"
        )

    for ds in (ds1, ds2):
        if all_changed(ds):
            logger.error("All files were changed on %s", ds.side)
            tripped = True
    if tripped:
        raise SafetyAbort(
            "all files were changed, safety abort "
            "(use --force to override)"
        )
