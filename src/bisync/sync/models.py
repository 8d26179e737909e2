"""Data contracts for the bisync engine.

- ``Delta``: why a path was classified as changed.
- ``DeltaSet``: per-side classification of every path for one run.
- ``Queues``: the merged, directional operation plan.
- ``Operation`` / ``TransferResult``: outcome of one applied operation.
- ``RunReport``: aggregate results for a full run.

``DeltaSet`` and ``Queues`` are plain dataclasses: they are built once by
the detector and resolver and only read afterwards.  Models that are
reported or serialised are frozen Pydantic models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel

from bisync.backends.base import FileInfo

if TYPE_CHECKING:
    from .listing import Listing

PATH1 = "path1"
PATH2 = "path2"


class Delta(str, Enum):
    """Reason a path differs from the prior listing."""

    NEW = "new"
    NEWER = "newer"
    OLDER = "older"
    SIZE = "size"
    HASH = "hash"
    DELETED = "deleted"

    @property
    def is_deleted(self) -> bool:
        return self is Delta.DELETED


@dataclass(frozen=True)
class DeltaSet:
    """Classification of one side's paths relative to its prior listing.

    Attributes:
        side: ``"Path1"`` or ``"Path2"`` (used in log messages).
        prior: The prior (last synchronized) listing.
        current: The listing captured this run.
        deltas: Reason per changed path.
        created: Paths only in the current listing.
        updated: Paths in both listings whose metadata differs.
        deleted: Paths only in the prior listing.
        unchanged: Paths in both listings with matching metadata.
        check_files: Current paths whose base name is the check filename.
        found_same: ``False`` when the prior listing had files and none of
            them was unchanged.
        prior_count: Number of files in the prior listing.
    """

    side: str
    prior: Listing
    current: Listing
    deltas: dict[str, Delta] = field(default_factory=dict)
    created: frozenset[str] = frozenset()
    updated: frozenset[str] = frozenset()
    deleted: frozenset[str] = frozenset()
    unchanged: frozenset[str] = frozenset()
    check_files: frozenset[str] = frozenset()
    found_same: bool = True
    prior_count: int = 0

    @property
    def empty(self) -> bool:
        """``True`` if nothing changed on this side."""
        return not self.deltas

    @property
    def deleted_files(self) -> int:
        """Number of deleted files (directories not counted)."""
        return sum(
            1
            for p in self.deleted
            if (info := self.prior.get(p)) is not None and not info.is_dir
        )

    def stats(self) -> str:
        """One-line change summary for logging."""
        return (
            f"{self.side}: {len(self.deltas)} changes: "
            f"{len(self.created)} new, {len(self.updated)} modified, "
            f"{len(self.deleted)} deleted"
        )


@dataclass
class Queues:
    """Directional operation queues for one run.

    Written once by the resolver; read by the applier and by the listing
    update step.  ``kind_clash`` holds paths that are a file on one side
    and a directory on the other; they are never applied.
    """

    copy1to2: set[str] = field(default_factory=set)
    copy2to1: set[str] = field(default_factory=set)
    delete1: set[str] = field(default_factory=set)
    delete2: set[str] = field(default_factory=set)
    renamed1: set[str] = field(default_factory=set)
    renamed2: set[str] = field(default_factory=set)
    rename_skipped: set[str] = field(default_factory=set)
    deleted_on_both: set[str] = field(default_factory=set)
    kind_clash: set[str] = field(default_factory=set)

    @property
    def empty(self) -> bool:
        """``True`` if no backend would be touched."""
        return not (
            self.copy1to2
            or self.copy2to1
            or self.delete1
            or self.delete2
            or self.renamed1
            or self.renamed2
        )

    def snapshot(self) -> dict[str, list[str]]:
        """Sorted, JSON-friendly copy of every queue."""
        return {
            name: sorted(getattr(self, name))
            for name in (
                "copy1to2",
                "copy2to1",
                "delete1",
                "delete2",
                "renamed1",
                "renamed2",
                "rename_skipped",
                "deleted_on_both",
                "kind_clash",
            )
        }


class Operation(str, Enum):
    """Kinds of mutation the applier performs."""

    COPY = "copy"
    DELETE = "delete"
    RENAME = "rename"
    MKDIR = "mkdir"
    RMDIR = "rmdir"


class TransferResult(BaseModel):
    """Outcome of one applied operation.

    Attributes:
        operation: What was done.
        side: The side that was modified (``"path1"`` / ``"path2"``).
        path: Path written or removed on *side*.
        source: Original path for renames.
        success: Whether the operation succeeded.
        error: Error message if the operation failed.
        info: Metadata of the resulting entry, when one exists.
    """

    operation: Operation
    side: str
    path: str
    source: str | None = None
    success: bool
    error: str | None = None
    info: FileInfo | None = None

    model_config = {"frozen": True}


class RunReport(BaseModel):
    """Aggregate report for a bisync run.

    Attributes:
        session: Session name derived from both remotes.
        mode: ``"normal"``, ``"resync"`` or ``"check-sync"``.
        dry_run: Whether this was a dry-run (no changes applied).
        results: Individual operation results.
        queues: Snapshot of the operation queues.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    session: str
    mode: str = "normal"
    dry_run: bool = False
    results: list[TransferResult] = []
    queues: dict[str, list[str]] = {}
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _select(
        self, operations: tuple[Operation, ...], side: str
    ) -> list[TransferResult]:
        return [
            r
            for r in self.results
            if r.operation in operations and r.side == side
        ]

    @property
    def copied_to_path1(self) -> list[TransferResult]:
        """Copies and directory creations on Path1."""
        return self._select((Operation.COPY, Operation.MKDIR), PATH1)

    @property
    def copied_to_path2(self) -> list[TransferResult]:
        """Copies and directory creations on Path2."""
        return self._select((Operation.COPY, Operation.MKDIR), PATH2)

    @property
    def deleted_from_path1(self) -> list[TransferResult]:
        return self._select((Operation.DELETE, Operation.RMDIR), PATH1)

    @property
    def deleted_from_path2(self) -> list[TransferResult]:
        return self._select((Operation.DELETE, Operation.RMDIR), PATH2)

    @property
    def renames(self) -> list[TransferResult]:
        """Conflict renames on either side."""
        return [
            r for r in self.results if r.operation == Operation.RENAME
        ]

    @property
    def conflicts(self) -> list[str]:
        """Paths changed on both sides and renamed aside."""
        return sorted(
            set(self.queues.get("renamed1", []))
            | set(self.queues.get("renamed2", []))
        )

    @property
    def errors(self) -> list[TransferResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]
