"""Bounded-concurrency helpers for catalog fan-out.

The batch scheduler runs one batch of artists at a time; inside a batch it
may have several retrievals in flight.  :func:`throttled_gather` is a
drop-in replacement for ``asyncio.gather`` that wraps each awaitable in a
semaphore acquire/release so at most ``limit`` of them run at once.

Unlike a module-level semaphore, the limit here is per call: each batch
gets its own semaphore, so batches never share slots.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    limit: int = 1,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most *limit* at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute.
    limit:
        Maximum number running simultaneously.  ``1`` runs them strictly
        in order, one after another.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    semaphore = asyncio.Semaphore(limit)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [asyncio.ensure_future(_wrapped(c)) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
