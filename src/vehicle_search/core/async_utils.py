"""
Async Utilities for the conversational pipeline.

Python 3.12+ features used:
- asyncio.TaskGroup for structured concurrency (3.11+)
- Type parameter syntax for generic functions

Provides:
- Per-key lock registry (serialize work per session id, no global lock)
- Parallel execution with TaskGroup, preserving input order
- Deadline enforcement for external calls
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Keyed Lock
# =============================================================================

@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and discarded when idle.

    Work on different keys never contends; work on the same key runs
    strictly one at a time, in arrival order.

    Example:
        locks = KeyedLock()
        async with locks("session-123"):
            ...  # exclusive for this session only
    """

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def __call__(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry()
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def __len__(self) -> int:
        """Number of keys with a holder or waiter."""
        return len(self._entries)


# =============================================================================
# Parallel Execution with TaskGroup (Python 3.11+)
# =============================================================================

async def gather_with_errors(
    *coros: Awaitable[T],
    return_exceptions: bool = False,
) -> list[T | Exception]:
    """
    Execute coroutines in parallel using TaskGroup.

    Results are returned in the order the coroutines were given.

    Args:
        *coros: Coroutines to execute
        return_exceptions: If True, return exceptions instead of raising

    Returns:
        List of results (or exceptions if return_exceptions=True)

    Example:
        exact, semantic = await gather_with_errors(
            backend.exact_search(query),
            run_vector_search(),
            return_exceptions=True,
        )
    """
    results: list[T | Exception | None] = [None] * len(coros)

    if return_exceptions:
        async def safe_run(coro: Awaitable[T], index: int) -> None:
            try:
                results[index] = await coro
            except Exception as e:
                results[index] = e

        async with asyncio.TaskGroup() as tg:
            for i, coro in enumerate(coros):
                tg.create_task(safe_run(coro, i))
    else:
        # Fail fast on any exception
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(coro) for coro in coros]
        results = [task.result() for task in tasks]

    return results  # type: ignore[return-value]


# =============================================================================
# Deadlines
# =============================================================================

async def with_deadline(
    coro: Awaitable[T],
    timeout: float | None,
    operation: str,
) -> T:
    """
    Await ``coro`` for at most ``timeout`` seconds.

    Raises:
        TimeoutError: with the operation name, after cancelling the call
    """
    if timeout is None:
        return await coro
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError:
        logger.warning(f"{operation} timed out after {timeout:.1f}s")
        raise TimeoutError(f"{operation} timed out after {timeout:.1f}s") from None
