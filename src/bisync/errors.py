"""Exception hierarchy for bisync runs.

Three tiers of failure are distinguished by the run coordinator:

- A safe *abort* (``SafetyAbort`` and friends) leaves prior listings
  valid; the run is simply skipped and can be retried at any time.
- A *critical* failure ends with ``BisyncAborted``.  Unless the failure
  is retryable and resilient mode is on, the prior listings are renamed
  with an ``-err`` suffix and only ``--resync`` can recover.
- Per-item transfer failures are not exceptions at all; they are
  recorded as ``TransferResult`` entries and rolled back in the listings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .sync.models import RunReport


class BisyncError(Exception):
    """Base class for all bisync failures.

    Attributes:
        report: The ``RunReport`` built before the failure, if any.
    """

    def __init__(
        self, message: str, report: RunReport | None = None
    ) -> None:
        super().__init__(message)
        self.report = report


class BisyncAborted(BisyncError):
    """Run ended on a critical error.  Maps to exit status 2."""


class LockError(BisyncError):
    """The session lock is held by another run or cannot be created."""


class ListingError(BisyncError):
    """A listing file is missing, unreadable or empty."""


class SafetyAbort(BisyncError):
    """A safety guard tripped before any mutation was made."""


class AccessCheckError(BisyncError):
    """Check files differ between the two sides."""


class RunCancelled(BisyncError):
    """The run's cancellation token was triggered."""
