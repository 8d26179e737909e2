"""Bidirectional file sync engine.

Public API for reconciling two file trees ("Path1" and "Path2") against
the listings persisted by the previous run.

Architecture
------------
Each side is compared with its **own** prior listing; the two deltas are
then merged into directional operation queues.  Nothing is mutated until
the safety guard has passed, and new listings are only committed after
every queued operation has finished.

Modules:

- ``engine``          -- ``BisyncRun`` / ``bisync()``: run coordinator.
- ``listing``         -- ``Listing`` plus atomic load/save of listing files.
- ``session``         -- session naming, work-dir layout, lock file.
- ``deltas``          -- ``DeltaDetector``: per-side change classification.
- ``guard``           -- excess-delete, all-changed and access checks.
- ``queues``          -- ``build_queues``: conflict resolution.
- ``applier``         -- ``OperationApplier``: executes the queues.
- ``listing_update``  -- derives the next prior listings.
- ``models``          -- ``Delta``, ``DeltaSet``, ``Queues``,
  ``TransferResult``, ``RunReport``.
- ``reporter``        -- human-readable and JSON report formatting.

Usage example
-------------
::

    from bisync.backends import LocalFs
    from bisync.config_schema import BisyncOptions
    from bisync.sync import bisync, format_run_report

    fs1 = LocalFs("/data/laptop")
    fs2 = LocalFs("/mnt/backup/laptop")

    # The first run establishes the baseline
    bisync(fs1, fs2, BisyncOptions(resync=True))

    # Later runs propagate changes in both directions
    report = bisync(fs1, fs2)
    print(format_run_report(report))
"""

from .engine import BisyncRun, bisync
from .listing import Listing, load_listing, save_listing
from .models import (
    Delta,
    DeltaSet,
    Operation,
    Queues,
    RunReport,
    TransferResult,
)
from .reporter import (
    format_dry_run_preview,
    format_run_report,
    report_to_json,
)

__all__ = [
    "BisyncRun",
    "Delta",
    "DeltaSet",
    "Listing",
    "Operation",
    "Queues",
    "RunReport",
    "TransferResult",
    "bisync",
    "format_dry_run_preview",
    "format_run_report",
    "load_listing",
    "report_to_json",
    "save_listing",
]
