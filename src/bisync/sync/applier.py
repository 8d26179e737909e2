"""Operation applier: execute the queues against both backends.

Order of execution:

1. Conflict renames, sequentially.  A failed rename raises, because the
   alias copies queued behind it would otherwise overwrite data.
2. Copies to Path1, then copies to Path2, each on a bounded worker pool.
   Directory entries become ``mkdir`` calls and run first.
3. File deletes on a worker pool, then directory removals deepest first.

Per-item failures never raise.  They are recorded as unsuccessful
``TransferResult`` entries so the listing update step can roll them back.
"""

from __future__ import annotations

import logging
from typing import Callable

from bisync.backends.base import Backend, FileInfo
from bisync.backends.operations import copy_file
from bisync.config_schema import BisyncOptions
from bisync.core.async_utils import run_pool
from bisync.core.lifecycle import CancelToken
from bisync.errors import BisyncError

from .listing import Listing
from .models import PATH1, PATH2, Operation, Queues, TransferResult

logger = logging.getLogger(__name__)

_CANCELLED = "cancelled"


def _depth_first(paths: list[str]) -> list[str]:
    return sorted(paths, key=lambda p: (-p.count("/"), p))


def _remove_if_present(remove: Callable[[str], None], path: str) -> None:
    """Call *remove*; an entry that is already gone counts as removed."""
    try:
        remove(path)
    except FileNotFoundError:
        logger.debug("Already gone: %s", path)


class OperationApplier:
    """Apply ``Queues`` to a pair of backends.

    Args:
        fs1: Path1 backend.
        fs2: Path2 backend.
        options: Run options (``dry_run``, ``transfers``, suffixes).
        cancel: Token polled before each item.
    """

    def __init__(
        self,
        fs1: Backend,
        fs2: Backend,
        options: BisyncOptions,
        cancel: CancelToken | None = None,
    ) -> None:
        self.fs1 = fs1
        self.fs2 = fs2
        self.options = options
        self.cancel = cancel or CancelToken()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def apply(
        self, queues: Queues, current1: Listing, current2: Listing
    ) -> list[TransferResult]:
        """Execute every queued operation.

        Args:
            queues: Operations to perform.
            current1: Current Path1 listing (source metadata).
            current2: Current Path2 listing.

        Returns:
            One result per attempted (or skipped-by-cancel) item.

        Raises:
            BisyncError: If a conflict rename fails.
            RunCancelled: If the token was cancelled during the run,
                after every started item has finished.
        """
        src1 = current1.copy()
        src2 = current2.copy()
        results: list[TransferResult] = []

        results.extend(self.rename(queues.renamed1, self.fs1, PATH1, src1))
        results.extend(self.rename(queues.renamed2, self.fs2, PATH2, src2))
        failed = [r for r in results if not r.success]
        if failed:
            raise BisyncError(
                "conflict rename failed: "
                + ", ".join(f"{r.side}:{r.path}" for r in failed)
            )

        results.extend(
            self.fast_copy(queues.copy2to1, self.fs2, self.fs1, PATH1, src2)
        )
        results.extend(
            self.fast_copy(queues.copy1to2, self.fs1, self.fs2, PATH2, src1)
        )
        results.extend(self.fast_delete(queues.delete1, self.fs1, PATH1, src1))
        results.extend(self.fast_delete(queues.delete2, self.fs2, PATH2, src2))

        self.cancel.raise_if_cancelled()
        return results

    # ------------------------------------------------------------------
    # Renames
    # ------------------------------------------------------------------

    def rename(
        self, paths: set[str], fs: Backend, side: str, source: Listing
    ) -> list[TransferResult]:
        """Rename each conflicting path to its side's alias.

        *source* is updated in place so that later copies find the alias.
        """
        suffix = (
            self.options.conflict_suffix1
            if side == PATH1
            else self.options.conflict_suffix2
        )
        results = []
        for path in sorted(paths):
            alias = path + suffix
            if self.cancel.cancelled:
                results.append(self._cancelled(Operation.RENAME, side, alias))
                continue
            try:
                if self.options.dry_run:
                    info = source.get(path).renamed(alias)
                else:
                    info = fs.move(path, alias)
            except Exception as exc:
                logger.error("Rename %s -> %s failed: %s", path, alias, exc)
                results.append(
                    TransferResult(
                        operation=Operation.RENAME,
                        side=side,
                        path=alias,
                        source=path,
                        success=False,
                        error=str(exc),
                    )
                )
                continue
            logger.info("- %-9s%-29s- %s", side.capitalize(), "Renamed", alias)
            source.remove(path)
            source.put(info)
            results.append(
                TransferResult(
                    operation=Operation.RENAME,
                    side=side,
                    path=alias,
                    source=path,
                    success=True,
                    info=info,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def fast_copy(
        self,
        paths: set[str],
        src_fs: Backend,
        dst_fs: Backend,
        dst_side: str,
        source: Listing,
    ) -> list[TransferResult]:
        """Copy *paths* from *src_fs* to *dst_fs*.

        Directories (present in *source* with ``is_dir``) are created
        first, shallowest first; files are transferred in parallel.
        """
        if not paths:
            return []
        dirs = sorted(
            (p for p in paths if self._is_dir(source, p)),
            key=lambda p: (p.count("/"), p),
        )
        files = sorted(p for p in paths if p not in set(dirs))
        logger.info(
            "Copying %d files and %d directories to %s",
            len(files),
            len(dirs),
            dst_side.capitalize(),
        )

        results = [
            self._run_one(
                Operation.MKDIR,
                dst_side,
                path,
                lambda p=path: dst_fs.mkdir(p),
                source,
            )
            for path in dirs
        ]
        jobs: list[Callable[[], TransferResult]] = [
            lambda p=path: self._run_one(
                Operation.COPY,
                dst_side,
                p,
                lambda: copy_file(src_fs, dst_fs, p),
                source,
            )
            for path in files
        ]
        results.extend(run_pool(jobs, self.options.transfers))
        return results

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def fast_delete(
        self, paths: set[str], fs: Backend, side: str, target: Listing
    ) -> list[TransferResult]:
        """Delete *paths* from *fs*: files in parallel, then directories."""
        if not paths:
            return []
        dirs = _depth_first([p for p in paths if self._is_dir(target, p)])
        files = sorted(p for p in paths if p not in set(dirs))
        logger.info(
            "Deleting %d files and %d directories on %s",
            len(files),
            len(dirs),
            side.capitalize(),
        )

        jobs: list[Callable[[], TransferResult]] = [
            lambda p=path: self._run_one(
                Operation.DELETE,
                side,
                p,
                lambda: _remove_if_present(fs.remove, p),
                None,
            )
            for path in files
        ]
        results = run_pool(jobs, self.options.transfers)
        results.extend(
            self._run_one(
                Operation.RMDIR,
                side,
                path,
                lambda p=path: _remove_if_present(fs.rmdir, p),
                None,
            )
            for path in dirs
        )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_dir(listing: Listing, path: str) -> bool:
        info = listing.get(path)
        return info is not None and info.is_dir

    def _cancelled(
        self, operation: Operation, side: str, path: str
    ) -> TransferResult:
        return TransferResult(
            operation=operation,
            side=side,
            path=path,
            success=False,
            error=_CANCELLED,
        )

    def _run_one(
        self,
        operation: Operation,
        side: str,
        path: str,
        action: Callable[[], FileInfo | None],
        source: Listing | None,
    ) -> TransferResult:
        """Run one backend call and wrap the outcome.

        In dry-run mode the call is skipped and the source entry (when
        there is one) is reported as the result.
        """
        if self.cancel.cancelled:
            return self._cancelled(operation, side, path)
        try:
            if self.options.dry_run:
                info = source.get(path) if source is not None else None
            else:
                info = action()
        except Exception as exc:
            logger.error(
                "%s %s on %s failed: %s",
                operation.value.capitalize(),
                path,
                side.capitalize(),
                exc,
            )
            return TransferResult(
                operation=operation,
                side=side,
                path=path,
                success=False,
                error=str(exc),
            )
        logger.debug(
            "%s %s on %s", operation.value.capitalize(), path, side.capitalize()
        )
        return TransferResult(
            operation=operation,
            side=side,
            path=path,
            success=True,
            info=info if isinstance(info, FileInfo) else None,
        )
