"""Run coordinator that drives one complete bisync invocation.

``BisyncRun`` ties together the listing store, delta detector, safety
guard, queue builder, applier and listing update.  A run is one of:

- **check-only**: compare the two prior listings and stop;
- **resync**: rebuild both listings from scratch, Path1 winning on
  differences;
- **normal**: detect changes on both sides since the prior listings,
  guard, resolve, apply, and commit new listings.

Failures set the ``abort``, ``critical`` and ``retryable`` flags.  On a
critical ending the prior listings are renamed with an ``-err`` suffix
(unless the failure is retryable and resilient mode is on) and
``BisyncAborted`` is raised.  Other failures propagate as plain
``BisyncError`` with the listings untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from bisync.backends.base import Backend
from bisync.backends.operations import (
    entries_match,
    files_equal,
    remove_empty_dirs,
)
from bisync.config_schema import BisyncOptions, CheckSyncMode
from bisync.core.lifecycle import CancelToken, Once
from bisync.errors import (
    AccessCheckError,
    BisyncAborted,
    BisyncError,
    ListingError,
    RunCancelled,
    SafetyAbort,
)

from .applier import OperationApplier
from .deltas import DeltaDetector, filters_digest, find_check_files
from .guard import check_access, check_safety
from .listing import (
    Listing,
    copy_file_if_exists,
    load_listing,
    mark_failed,
    remove_if_exists,
    save_listing,
)
from .listing_update import update_listings
from .models import Queues, RunReport, TransferResult
from .queues import build_queues
from .session import LockFile, SessionFiles, session_name

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _coarser(a: int | None, b: int | None) -> int | None:
    if a is None or b is None:
        return None
    return max(a, b)


class BisyncRun:
    """State for one bisync invocation.

    Args:
        fs1: Path1 backend.
        fs2: Path2 backend.
        options: Run options.
        cancel: Cancellation token; a fresh one is created if omitted.
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

        self.session = session_name(fs1, fs2)
        workdir = Path(options.workdir).expanduser()
        self.files = SessionFiles(workdir, self.session, options.dry_run)
        self.lock = LockFile(self.files.lock_file)
        self.detector = DeltaDetector(options)
        self.applier = OperationApplier(fs1, fs2, options, self.cancel)

        self.abort = False
        self.critical = False
        self.retryable = False

        self.queues = Queues()
        self.results: list[TransferResult] = []
        self.started_at = _now()
        self._finalise = Once(self._cleanup_interrupted)

    @property
    def mode(self) -> str:
        if self.options.check_sync == CheckSyncMode.ONLY:
            return "check-sync"
        return "resync" if self.options.resync else "normal"

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> RunReport:
        """Execute the run.

        Returns:
            The ``RunReport`` on success.

        Raises:
            BisyncAborted: On a critical failure or interruption.
            BisyncError: On any other failure (listings untouched).
        """
        opt = self.options
        if not (opt.dry_run or opt.force):
            for label, fs in (("path1", self.fs1), ("path2", self.fs2)):
                if fs.precision is None:
                    raise BisyncError(
                        f"modification time support is missing on {label}"
                    )

        logger.info(
            "Synching Path1 %r with Path2 %r (%s%s)",
            self.fs1.root,
            self.fs2.root,
            self.mode,
            ", dry run" if opt.dry_run else "",
        )
        logger.debug("Session files: %s.*", self.files.base)

        if not opt.dry_run:
            self.lock.acquire()

        error: BisyncError | None = None
        try:
            try:
                self._dispatch()
            except (RunCancelled, KeyboardInterrupt) as exc:
                self._finalise()
                reason = str(exc) or "bisync interrupted"
                logger.error("Bisync interrupted: %s", reason)
                raise BisyncAborted(reason, report=self.report()) from exc
            except BisyncError as exc:
                error = exc
            except Exception as exc:
                logger.exception("Unexpected error during bisync")
                self.critical = True
                error = BisyncError(f"unexpected error: {exc}")
                error.__cause__ = exc
        finally:
            self.lock.release()

        report = self.report()
        if error is None:
            logger.info("Bisync successful")
            return report

        error.report = report
        if self.critical:
            if self.retryable and opt.resilient:
                logger.error(
                    "Bisync critical error: %s. Listings kept, "
                    "the next run will retry",
                    error,
                )
            else:
                self._mark_listings_failed()
                logger.error(
                    "Bisync critical error: %s. Bisync aborted, "
                    "must run --resync to recover",
                    error,
                )
            raise BisyncAborted(str(error), report=report) from error
        if self.abort:
            logger.error("Bisync aborted: %s. Prior listings kept", error)
        else:
            logger.error("Bisync failed: %s", error)
        raise error

    def report(self) -> RunReport:
        return RunReport(
            session=self.session,
            mode=self.mode,
            dry_run=self.options.dry_run,
            results=self.results,
            queues=self.queues.snapshot(),
            started_at=self.started_at,
            completed_at=_now(),
        )

    def _dispatch(self) -> None:
        if self.options.check_sync == CheckSyncMode.ONLY:
            self._run_check_only()
        elif self.options.resync:
            self._run_resync()
        else:
            self._run_normal()

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def _fail(
        self,
        exc: BisyncError,
        *,
        critical: bool = False,
        retryable: bool = False,
    ) -> BisyncError:
        """Record the failure tier for *exc* and return it for raising."""
        if critical:
            self.critical = True
            self.retryable = retryable
        else:
            self.abort = True
        return exc

    # ------------------------------------------------------------------
    # Check-only mode
    # ------------------------------------------------------------------

    def _run_check_only(self) -> None:
        listing1, listing2 = self._load_priors()
        try:
            self._check_sync(listing1, listing2)
        except BisyncError as exc:
            raise self._fail(exc, critical=True, retryable=True) from None
        logger.info("Path1 and Path2 listings are in sync")

    def _check_sync(self, listing1: Listing, listing2: Listing) -> None:
        """Require both listings to contain the same paths.

        Raises:
            BisyncError: If any path is present on one side only.
        """
        paths1 = set(listing1)
        paths2 = set(listing2)
        for path in sorted(paths1 - paths2):
            logger.error("Path1 entry not found in Path2: %s", path)
        for path in sorted(paths2 - paths1):
            logger.error("Path2 entry not found in Path1: %s", path)
        if paths1 != paths2:
            raise BisyncError(
                "path1 and path2 are out of sync, run --resync to recover"
            )

    # ------------------------------------------------------------------
    # Normal mode
    # ------------------------------------------------------------------

    def _run_normal(self) -> None:
        opt = self.options
        files = self.files

        prior1, prior2 = self._load_priors()
        self._check_filters()

        try:
            ds1 = self.detector.detect(
                self.fs1, "Path1", prior1, files.new_listing1
            )
            ds2 = self.detector.detect(
                self.fs2, "Path2", prior2, files.new_listing2
            )
        except ListingError as exc:
            raise self._fail(exc) from None
        except OSError as exc:
            raise self._fail(
                BisyncError(f"error listing files: {exc}")
            ) from exc

        try:
            check_safety(ds1, ds2, opt)
        except AccessCheckError as exc:
            raise self._fail(exc, critical=True) from None
        except SafetyAbort as exc:
            raise self._fail(exc) from None

        if ds1.empty and ds2.empty:
            logger.info("No changes found")
            self._commit_unchanged()
            self._finish()
            return

        self.queues = build_queues(
            ds1,
            ds2,
            opt,
            lambda path: files_equal(self.fs1, self.fs2, path),
        )
        self._apply(ds1.current, ds2.current)

        new1, new2 = update_listings(
            prior1, prior2, ds1.current, ds2.current, self.queues, self.results
        )
        self._commit(new1, new2)
        self._finish()

    def _load_priors(self) -> tuple[Listing, Listing]:
        files = self.files
        if self.options.dry_run:
            for real, dry in (
                (files.real_listing1, files.listing1),
                (files.real_listing2, files.listing2),
            ):
                remove_if_exists(dry)
                copy_file_if_exists(real, dry)
        if not (files.listing1.exists() and files.listing2.exists()):
            raise self._fail(
                ListingError(
                    "cannot find prior Path1 or Path2 listings, likely due "
                    "to critical error on prior run"
                ),
                critical=True,
                retryable=True,
            )
        try:
            return load_listing(files.listing1), load_listing(files.listing2)
        except ListingError as exc:
            raise self._fail(exc, critical=True, retryable=True) from None

    def _check_filters(self) -> None:
        path = self.files.filters_file
        stored = path.read_text().strip() if path.exists() else None
        if stored is None and not self.options.exclude:
            return
        if stored != filters_digest(self.options.exclude):
            raise self._fail(
                BisyncError("exclude patterns changed, must run --resync"),
                critical=True,
                retryable=True,
            )

    def _apply(self, current1: Listing, current2: Listing) -> None:
        try:
            self.results = self.applier.apply(self.queues, current1, current2)
        except RunCancelled:
            raise
        except BisyncError as exc:
            raise self._fail(exc, critical=True) from None
        except Exception as exc:
            raise self._fail(
                BisyncError(f"error applying changes: {exc}"), critical=True
            ) from exc

    def _commit_unchanged(self) -> None:
        """Promote the ``-new`` listings verbatim."""
        files = self.files
        try:
            copy_file_if_exists(files.new_listing1, files.listing1)
            copy_file_if_exists(files.new_listing2, files.listing2)
        except OSError as exc:
            raise self._fail(
                BisyncError(f"cannot save listings: {exc}"),
                critical=True,
                retryable=True,
            ) from exc

    def _commit(self, new1: Listing, new2: Listing) -> None:
        files = self.files
        try:
            copy_file_if_exists(files.listing1, files.old_listing1)
            copy_file_if_exists(files.listing2, files.old_listing2)
            save_listing(new1, files.listing1)
            save_listing(new2, files.listing2)
        except OSError as exc:
            raise self._fail(
                BisyncError(f"cannot save listings: {exc}"),
                critical=True,
                retryable=True,
            ) from exc
        logger.info("Updated listings for session %s", self.session)

    def _finish(self) -> None:
        """Post-commit steps shared by normal and resync runs."""
        opt = self.options
        files = self.files
        if not opt.no_cleanup:
            remove_if_exists(files.new_listing1)
            remove_if_exists(files.new_listing2)

        if opt.check_sync == CheckSyncMode.TRUE and not opt.dry_run:
            try:
                self._check_sync(
                    load_listing(files.listing1), load_listing(files.listing2)
                )
            except BisyncError as exc:
                raise self._fail(exc, critical=True) from None

        if opt.remove_empty_dirs and not opt.dry_run:
            for label, fs in (("Path1", self.fs1), ("Path2", self.fs2)):
                try:
                    removed = remove_empty_dirs(fs)
                except OSError as exc:
                    raise self._fail(
                        BisyncError(
                            f"cannot remove empty directories on {label}: {exc}"
                        ),
                        critical=True,
                        retryable=True,
                    ) from exc
                if removed:
                    logger.info(
                        "Removed %d empty directories on %s",
                        len(removed),
                        label,
                    )

        failed = [r for r in self.results if not r.success]
        if failed:
            error = BisyncError(
                f"{len(failed)} operations failed, they will be "
                "retried on the next run"
            )
            if opt.resync:
                raise self._fail(error, critical=True, retryable=True)
            raise error

    # ------------------------------------------------------------------
    # Resync mode
    # ------------------------------------------------------------------

    def _run_resync(self) -> None:
        opt = self.options
        files = self.files
        logger.info("Copying unique Path2 files to Path1")

        try:
            current1 = self.detector.capture(self.fs1, files.new_listing1)
            current2 = self.detector.capture(self.fs2, files.new_listing2)
            self.detector.check_listing(current1, "Path1")
            if opt.check_access:
                check_access(
                    find_check_files(current1, opt.check_filename),
                    find_check_files(current2, opt.check_filename),
                    opt.check_filename,
                )
        except BisyncError as exc:
            raise self._fail(exc, critical=True) from None
        except OSError as exc:
            raise self._fail(
                BisyncError(f"error listing files: {exc}"), critical=True
            ) from exc

        self.queues = self._resync_queues(current1, current2)
        self._apply(current1, current2)

        new1, new2 = update_listings(
            Listing(), Listing(), current1, current2, self.queues, self.results
        )
        self._commit(new1, new2)
        if not opt.dry_run:
            try:
                files.filters_file.write_text(
                    filters_digest(opt.exclude) + "\n"
                )
            except OSError as exc:
                raise self._fail(
                    BisyncError(f"cannot save filters digest: {exc}"),
                    critical=True,
                    retryable=True,
                ) from exc
        self._finish()

    def _resync_queues(self, current1: Listing, current2: Listing) -> Queues:
        """Path2-only entries go to Path1; differing entries go to Path2."""
        queues = Queues()
        precision = _coarser(self.fs1.precision, self.fs2.precision)
        for path in current2:
            if path not in current1:
                queues.copy2to1.add(path)
        for path in current1:
            info1 = current1.get(path)
            info2 = current2.get(path)
            if info2 is None:
                queues.copy1to2.add(path)
            elif info1.is_dir != info2.is_dir:
                logger.warning(
                    "Skipping %s: it is a file on one side and a "
                    "directory on the other",
                    path,
                )
                queues.kind_clash.add(path)
            elif not entries_match(info1, info2, precision):
                queues.copy1to2.add(path)
        logger.info(
            "Resync: %d entries to Path1, %d entries to Path2",
            len(queues.copy2to1),
            len(queues.copy1to2),
        )
        return queues

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _mark_listings_failed(self) -> None:
        for path in (self.files.listing1, self.files.listing2):
            try:
                mark_failed(path)
            except OSError as exc:
                logger.error("Cannot mark listing %s failed: %s", path, exc)

    def _cleanup_interrupted(self) -> None:
        self._mark_listings_failed()
        self.lock.release()


def bisync(
    fs1: Backend,
    fs2: Backend,
    options: BisyncOptions | None = None,
    cancel: CancelToken | None = None,
) -> RunReport:
    """Synchronise two backends.

    Must not be called from a running event loop; transfers use
    ``asyncio.run`` internally.

    Args:
        fs1: Path1 backend.
        fs2: Path2 backend.
        options: Run options; defaults to a normal run.
        cancel: Optional token to interrupt the run from another thread.

    Returns:
        The ``RunReport`` describing what was done.

    Raises:
        BisyncAborted: On a critical failure.
        BisyncError: On any other failure.
    """
    return BisyncRun(fs1, fs2, options or BisyncOptions(), cancel).run()
