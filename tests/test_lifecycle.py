"""Tests for CancelToken and Once."""

import threading

import pytest

from bisync.core.lifecycle import CancelToken, Once
from bisync.errors import BisyncError, RunCancelled


class TestCancelToken:
    """Tests for CancelToken."""

    def test_initially_not_cancelled(self):
        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_raises_with_reason(self):
        token = CancelToken()
        token.cancel("signal received")
        assert token.cancelled
        with pytest.raises(RunCancelled, match="signal received"):
            token.raise_if_cancelled()

    def test_first_reason_wins(self):
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_run_cancelled_is_bisync_error(self):
        assert issubclass(RunCancelled, BisyncError)


class TestOnce:
    """Tests for Once."""

    def test_runs_once(self):
        calls = []
        once = Once(lambda: calls.append(1))
        assert once() is True
        assert once() is False
        assert calls == [1]
        assert once.done

    def test_concurrent_callers(self):
        calls = []
        once = Once(lambda: calls.append(1))
        threads = [threading.Thread(target=once) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert calls == [1]
