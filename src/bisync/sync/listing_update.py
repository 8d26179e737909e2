"""Derive the next prior listings from the current ones and the results.

The new listings must describe what is really on each side after the
run, except for paths whose operation failed: those are rolled back to
their prior entries on both sides so the next run detects them again.
File/directory clashes are rolled back the same way.
"""

from __future__ import annotations

import logging

from .listing import Listing
from .models import PATH1, PATH2, Operation, Queues, TransferResult

logger = logging.getLogger(__name__)


def _expected(queues: Queues) -> set[tuple[str, str]]:
    """Every (side, path) the applier was asked to touch."""
    expected: set[tuple[str, str]] = set()
    expected.update((PATH2, p) for p in queues.copy1to2)
    expected.update((PATH1, p) for p in queues.copy2to1)
    expected.update((PATH1, p) for p in queues.delete1)
    expected.update((PATH2, p) for p in queues.delete2)
    return expected


def update_listings(
    prior1: Listing,
    prior2: Listing,
    current1: Listing,
    current2: Listing,
    queues: Queues,
    results: list[TransferResult],
) -> tuple[Listing, Listing]:
    """Build the listings to persist as the new priors.

    Args:
        prior1: Path1 listing from the previous run (empty on resync).
        prior2: Path2 listing from the previous run.
        current1: Path1 listing captured this run.
        current2: Path2 listing captured this run.
        queues: The queues that were applied.
        results: Applier results.

    Returns:
        ``(new1, new2)``.
    """
    new = {PATH1: current1.copy(), PATH2: current2.copy()}
    prior = {PATH1: prior1, PATH2: prior2}

    def rollback(path: str) -> None:
        for side in (PATH1, PATH2):
            old = prior[side].get(path)
            if old is None:
                new[side].remove(path)
            else:
                new[side].put(old)

    seen: set[tuple[str, str]] = set()
    failed: list[str] = []
    for result in results:
        seen.add((result.side, result.path))
        listing = new[result.side]
        if not result.success:
            failed.append(result.path)
            continue
        if result.operation == Operation.RENAME:
            listing.remove(result.source)
            if result.info is not None:
                listing.put(result.info)
        elif result.operation in (Operation.COPY, Operation.MKDIR):
            if result.info is not None:
                listing.put(result.info)
        else:
            listing.remove(result.path)

    missing = sorted(p for side, p in _expected(queues) - seen)
    for path in failed + missing + sorted(queues.kind_clash):
        logger.debug("Rolling back listing entry %s", path)
        rollback(path)

    for path in queues.deleted_on_both:
        new[PATH1].remove(path)
        new[PATH2].remove(path)

    return new[PATH1], new[PATH2]
