"""Session naming, work-directory layout and the run lock.

A session is the pair of remotes being synchronised.  Every file the
engine persists lives under ``<workdir>/<session>``, so two runs against
the same pair of roots share listings and contend for the same lock.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from bisync.backends.base import Backend, fs_path
from bisync.errors import LockError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[\s\\/:?*]")


def canonical_path(remote: str) -> str:
    """Turn ``"name:root"`` into a string safe for use in a file name."""
    return _UNSAFE_CHARS.sub("_", remote).strip("_")


def session_name(fs1: Backend, fs2: Backend) -> str:
    """Deterministic session identity for a pair of backends."""
    return canonical_path(fs_path(fs1)) + ".." + canonical_path(fs_path(fs2))


@dataclass(frozen=True)
class SessionFiles:
    """Paths of every file persisted for one session.

    Attributes:
        workdir: Directory holding all session files.
        session: Session name from ``session_name()``.
        dry_run: Use the ``-dry`` listing variants.
    """

    workdir: Path
    session: str
    dry_run: bool = False

    @property
    def base(self) -> Path:
        return self.workdir / self.session

    def _listing(self, side: str) -> Path:
        suffix = "-dry" if self.dry_run else ""
        return Path(f"{self.base}.{side}.lst{suffix}")

    @property
    def listing1(self) -> Path:
        return self._listing("path1")

    @property
    def listing2(self) -> Path:
        return self._listing("path2")

    @property
    def real_listing1(self) -> Path:
        """Path1 listing regardless of dry-run."""
        return Path(f"{self.base}.path1.lst")

    @property
    def real_listing2(self) -> Path:
        return Path(f"{self.base}.path2.lst")

    @property
    def new_listing1(self) -> Path:
        return Path(f"{self.listing1}-new")

    @property
    def new_listing2(self) -> Path:
        return Path(f"{self.listing2}-new")

    @property
    def old_listing1(self) -> Path:
        return Path(f"{self.listing1}-old")

    @property
    def old_listing2(self) -> Path:
        return Path(f"{self.listing2}-old")

    @property
    def lock_file(self) -> Path:
        return Path(f"{self.base}.lck")

    @property
    def filters_file(self) -> Path:
        return Path(f"{self.base}.filters.md5")


class LockFile:
    """Create-exclusive lock file holding the owner's process ID.

    Args:
        path: Lock file location.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Create the lock file.

        Raises:
            LockError: If the lock file already exists or cannot be
                created.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(
                self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
            )
        except FileExistsError:
            if self.path.exists():
                raise LockError(
                    f"prior lock file found: {self.path}"
                ) from None
            raise LockError(
                f"cannot create lock file: {self.path}: "
                f"{self.path.parent} is not a directory"
            ) from None
        except OSError as exc:
            raise LockError(
                f"cannot create lock file: {self.path}: {exc}"
            ) from exc
        with os.fdopen(fd, "w") as fh:
            fh.write(str(os.getpid()))
        self._held = True
        logger.debug("Lock file created: %s", self.path)

    def release(self) -> None:
        """Remove the lock file if this instance holds it."""
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning("Lock file vanished: %s", self.path)
        self._held = False
        logger.debug("Lock file removed: %s", self.path)
