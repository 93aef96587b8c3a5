"""
Bounded worker pool for per-item provider requests.

A fixed number of workers pull item indexes from one shared cursor, so at
most `limit` requests are in flight regardless of how many items there
are. Results keep the input order.

Usage:
    texts = await map_bounded(translate_one, lines, limit=5)
"""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar


T = TypeVar("T")
R = TypeVar("R")


async def map_bounded(
    func: Callable[[T], Awaitable[R]],
    items: Sequence[T],
    limit: int
) -> list[R]:
    """
    Apply func to every item with at most limit calls running at once.

    Args:
        func: Coroutine function called once per item.
        items: Inputs, consumed in order.
        limit: Number of workers (at least one is started).

    Returns:
        func's results, in the order of items.

    Raises:
        Whatever func raises. The first failure cancels the other workers
        before it propagates.
    """
    results: list[R | None] = [None] * len(items)
    cursor = iter(range(len(items)))

    async def worker() -> None:
        for index in cursor:
            results[index] = await func(items[index])

    workers = [
        asyncio.ensure_future(worker())
        for _ in range(min(max(1, limit), max(1, len(items))))
    ]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    return results
