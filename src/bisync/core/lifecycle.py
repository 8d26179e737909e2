"""Run lifecycle primitives: cancellation token and one-shot guard."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from bisync.errors import RunCancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe cancellation flag passed into a run.

    The CLI cancels the token from its SIGINT handler; worker threads
    poll it between items.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "cancelled"

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation.  Idempotent."""
        if not self._event.is_set():
            self._reason = reason
            logger.debug("Cancellation requested: %s", reason)
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise ``RunCancelled`` if the token has been cancelled."""
        if self._event.is_set():
            raise RunCancelled(f"bisync interrupted: {self._reason}")


class Once:
    """Run a callable at most once, even when called from several threads.

    Args:
        func: The zero-argument callable to guard.
    """

    def __init__(self, func: Callable[[], None]) -> None:
        self._func = func
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def __call__(self) -> bool:
        """Invoke the callable unless it already ran.

        Returns:
            ``True`` if this call ran the callable, ``False`` otherwise.
        """
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._func()
        return True
