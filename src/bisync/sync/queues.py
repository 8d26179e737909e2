"""Conflict resolution: merge two ``DeltaSet`` objects into ``Queues``.

Decision table for a path ``p`` that changed on at least one side:

=====================  =====================  ==============================
Path1                  Path2                  Action
=====================  =====================  ==============================
new / modified         unchanged / absent     copy Path1 -> Path2
unchanged / absent     new / modified         copy Path2 -> Path1
new / modified         deleted                copy Path1 -> Path2
deleted                new / modified         copy Path2 -> Path1
deleted                unchanged              delete on Path2
unchanged              deleted                delete on Path1
deleted                deleted                forget (``deleted_on_both``)
new / modified         new / modified         identical: ``rename_skipped``,
                                              else rename both aside and
                                              copy each alias across
=====================  =====================  ==============================

A change always wins over a delete.  A path that is a file on one side
and a directory on the other is logged and left alone; its listing
entries are rolled back so it is reported again on the next run.
"""

from __future__ import annotations

import logging
from typing import Callable

from bisync.config_schema import BisyncOptions

from .deltas import log_item
from .models import DeltaSet, Queues

logger = logging.getLogger(__name__)


def _kind_mismatch(
    queues: Queues, ds1: DeltaSet, ds2: DeltaSet, path: str
) -> bool:
    info1 = ds1.current.get(path)
    info2 = ds2.current.get(path)
    if info1 is None or info2 is None or info1.is_dir == info2.is_dir:
        return False
    logger.warning(
        "Skipping %s: it is a file on one side and a directory on the other",
        path,
    )
    queues.kind_clash.add(path)
    return True


def build_queues(
    ds1: DeltaSet,
    ds2: DeltaSet,
    options: BisyncOptions,
    is_equal: Callable[[str], bool],
) -> Queues:
    """Compute the operation queues for one run.

    Args:
        ds1: Path1 changes.
        ds2: Path2 changes.
        options: Run options (conflict suffixes).
        is_equal: Content comparison for paths changed on both sides.

    Returns:
        The populated ``Queues``.
    """
    queues = Queues()
    suffix1 = options.conflict_suffix1
    suffix2 = options.conflict_suffix2

    for path in sorted(set(ds1.deltas) | set(ds2.deltas)):
        d1 = ds1.deltas.get(path)
        d2 = ds2.deltas.get(path)

        if d1 is not None and d2 is not None:
            if d1.is_deleted and d2.is_deleted:
                queues.deleted_on_both.add(path)
                log_item("Path1", "File was deleted on both", path)
            elif d1.is_deleted:
                queues.copy2to1.add(path)
                log_item("Path2", "Queue copy to Path1", path)
            elif d2.is_deleted:
                queues.copy1to2.add(path)
                log_item("Path1", "Queue copy to Path2", path)
            elif _kind_mismatch(queues, ds1, ds2, path):
                continue
            elif ds1.current.get(path).is_dir:
                continue
            elif is_equal(path):
                queues.rename_skipped.add(path)
                log_item("Path1", "Files are equal, skipping", path)
            else:
                queues.renamed1.add(path)
                queues.renamed2.add(path)
                queues.copy1to2.add(path + suffix1)
                queues.copy2to1.add(path + suffix2)
                log_item("Path1", "Both changed, renaming", path)
            continue

        if d1 is not None:
            if d1.is_deleted:
                if path in ds2.current:
                    queues.delete2.add(path)
                    log_item("Path2", "Queue delete", path)
            elif not _kind_mismatch(queues, ds1, ds2, path):
                queues.copy1to2.add(path)
                log_item("Path1", "Queue copy to Path2", path)
        else:
            if d2.is_deleted:
                if path in ds1.current:
                    queues.delete1.add(path)
                    log_item("Path1", "Queue delete", path)
            elif not _kind_mismatch(queues, ds1, ds2, path):
                queues.copy2to1.add(path)
                log_item("Path2", "Queue copy to Path1", path)

    _keep_occupied_dirs(queues, ds1, ds2)
    return queues


def _keep_occupied_dirs(queues: Queues, ds1: DeltaSet, ds2: DeltaSet) -> None:
    """Drop directory deletes that a queued copy would repopulate."""
    targets = queues.copy1to2 | queues.copy2to1
    for delete, listing in (
        (queues.delete1, ds1.current),
        (queues.delete2, ds2.current),
    ):
        for path in sorted(delete):
            info = listing.get(path)
            if info is None or not info.is_dir:
                continue
            prefix = path + "/"
            if any(t.startswith(prefix) for t in targets):
                logger.info("Keeping directory %s: copies queued into it", path)
                delete.discard(path)
