"""Shared concurrency primitives for ingestion and the podcast workflow.

Two spots in docpod have independent units of work: storing/fetching the
chunk objects of one document, and answering the questions of one podcast
job.  Both go through :func:`throttled_gather`, a drop-in replacement for
``asyncio.gather`` that bounds how many awaitables run at once and hands
results back in input order, because chunk indices and question positions
are used as stable keys downstream.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from docpod.utils.logging import get_logger

_T = TypeVar("_T")

# Default cap for object-store fan-out when the caller passes no semaphore.
_DEFAULT_CONCURRENCY = 8

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  A fresh semaphore of
        ``_DEFAULT_CONCURRENCY`` slots is used when omitted.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(_DEFAULT_CONCURRENCY)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def gather_until_cancelled(
    factories: list[Callable[[], Awaitable[_T]]],
    is_cancelled: Callable[[], bool],
    semaphore: asyncio.Semaphore,
    cancelled_error: Callable[[], BaseException],
) -> list[_T | BaseException]:
    """Run coroutine factories under *semaphore*, skipping new work once cancelled.

    Each factory is only invoked after its semaphore slot is acquired and
    only if ``is_cancelled()`` is still false; otherwise its slot yields
    ``cancelled_error()``.  Work already started is allowed to finish.
    Results keep the order of *factories*.
    """

    skipped = 0

    async def _run(factory: Callable[[], Awaitable[_T]]) -> _T:
        nonlocal skipped
        async with semaphore:
            if is_cancelled():
                skipped += 1
                raise cancelled_error()
            return await factory()

    results = await asyncio.gather(*(_run(f) for f in factories), return_exceptions=True)
    if skipped:
        _logger.info("gather_cancelled", skipped=skipped, total=len(factories))
    return results
