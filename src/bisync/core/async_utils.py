"""Bounded worker pool for running blocking backend calls concurrently.

Backends expose plain synchronous methods.  Transfers are fanned out to
threads with ``asyncio.to_thread`` and bounded by a semaphore created per
pool invocation, so there is no process-wide concurrency state.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync_limited(
    semaphore: asyncio.Semaphore,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a worker thread, bounded by *semaphore*."""
    async with semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Await all coroutines and return their results in input order.

    This is the join barrier: it returns only once every coroutine has
    finished.  Exceptions propagate from the first failure, so callers
    should catch per-item errors inside each coroutine.
    """
    return list(await asyncio.gather(*coros))


def run_pool(
    jobs: Sequence[Callable[[], T]], max_workers: int
) -> list[T]:
    """Run zero-argument *jobs* on at most *max_workers* threads.

    Blocks until every job has returned.

    Args:
        jobs: Callables to run.  Each should handle its own errors.
        max_workers: Upper bound on concurrently running jobs (>= 1).

    Returns:
        Job results in the same order as *jobs*.
    """
    if not jobs:
        return []

    async def _main() -> list[T]:
        semaphore = asyncio.Semaphore(max(1, max_workers))
        return await gather_limited(
            [run_sync_limited(semaphore, job) for job in jobs]
        )

    logger.debug(
        "Running %d jobs on up to %d workers", len(jobs), max_workers
    )
    return asyncio.run(_main())
