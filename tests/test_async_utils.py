"""
Tests for async_utils module.

Covers run_sync and gather_limited.
"""

import asyncio

import pytest

from settings_sync.core.async_utils import gather_limited, run_sync


def _sync_add(a: int, b: int) -> int:
    return a + b


async def test_run_sync_calls_function():
    """run_sync delegates to asyncio.to_thread with correct args."""
    result = await run_sync(_sync_add, 3, 4)
    assert result == 7


async def test_run_sync_passes_kwargs():
    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    result = await run_sync(_kw_func, name="world")
    assert result == "hello world"


async def test_run_sync_propagates_exceptions():
    def _boom():
        raise OSError("disk full")

    with pytest.raises(OSError, match="disk full"):
        await run_sync(_boom)


async def test_gather_limited_returns_results_in_order():
    async def _double(x):
        await asyncio.sleep(0.01 * (5 - x))
        return x * 2

    results = await gather_limited(range(5), _double, limit=3)
    assert results == [0, 2, 4, 6, 8]


async def test_gather_limited_empty():
    async def _never(x):
        raise AssertionError("not called")

    assert await gather_limited([], _never, limit=2) == []


async def test_gather_limited_rejects_zero_limit():
    async def _noop(x):
        return x

    with pytest.raises(ValueError, match="at least 1"):
        await gather_limited([1], _noop, limit=0)


async def test_gather_limited_concurrency_bound():
    """No more than *limit* workers run at once."""
    max_concurrent = 0
    current = 0

    async def _track(val):
        nonlocal max_concurrent, current
        current += 1
        max_concurrent = max(max_concurrent, current)
        await asyncio.sleep(0.02)
        current -= 1
        return val

    results = await gather_limited(range(6), _track, limit=2)

    assert results == [0, 1, 2, 3, 4, 5]
    assert max_concurrent == 2
