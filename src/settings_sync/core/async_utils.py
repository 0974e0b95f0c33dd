"""Async utilities for bridging blocking HTTP, file and subprocess calls to
the sync event loop."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        info = await run_sync(client.fetch_info)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[Any]],
    limit: int,
) -> list[Any]:
    """Run ``worker(item)`` for every item, at most *limit* at a time.

    Returns results in input order.  Exceptions propagate from the first
    failure; workers that must not abort the batch catch their own errors.

    Args:
        items: Inputs to process.
        worker: Coroutine function called once per item.
        limit: Maximum number of workers running concurrently.

    Returns:
        List of worker results in the same order as *items*.
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    semaphore = asyncio.Semaphore(limit)

    async def _bounded(item: T) -> Any:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(_bounded(i) for i in items)))
