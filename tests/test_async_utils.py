"""Tests for core/async_utils.py - keyed locks, parallel execution, deadlines."""

from __future__ import annotations

import asyncio

import pytest

from vehicle_search.core.async_utils import KeyedLock, gather_with_errors, with_deadline

# ============================================================================
# KeyedLock
# ============================================================================


class TestKeyedLock:
    async def test_same_key_serializes(self):
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks("s1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-start", "a-end", "b-start", "b-end"]

    async def test_different_keys_do_not_contend(self):
        locks = KeyedLock()
        entered = asyncio.Event()

        async def holder() -> None:
            async with locks("s1"):
                await asyncio.wait_for(entered.wait(), timeout=1.0)

        async def other() -> None:
            async with locks("s2"):
                entered.set()

        await asyncio.gather(holder(), other())
        assert entered.is_set()

    async def test_idle_entries_are_discarded(self):
        locks = KeyedLock()
        async with locks("s1"):
            assert len(locks) == 1
        assert len(locks) == 0

    async def test_released_on_exception(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks("s1"):
                raise RuntimeError("boom")
        assert len(locks) == 0


# ============================================================================
# gather_with_errors
# ============================================================================


class TestGatherWithErrors:
    async def test_preserves_order(self):
        async def delayed(value: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return value

        results = await gather_with_errors(delayed(1, 0.02), delayed(2, 0.0))
        assert results == [1, 2]

    async def test_return_exceptions(self):
        async def ok() -> str:
            return "ok"

        async def fail() -> str:
            raise ValueError("nope")

        results = await gather_with_errors(ok(), fail(), return_exceptions=True)
        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)

    async def test_fail_fast(self):
        async def fail() -> None:
            raise ValueError("nope")

        with pytest.raises(ExceptionGroup):
            await gather_with_errors(fail())


# ============================================================================
# with_deadline
# ============================================================================


class TestWithDeadline:
    async def test_returns_result(self):
        async def quick() -> int:
            return 42

        assert await with_deadline(quick(), 1.0, "quick") == 42

    async def test_no_timeout(self):
        async def quick() -> int:
            return 7

        assert await with_deadline(quick(), None, "quick") == 7

    async def test_timeout_names_operation(self):
        with pytest.raises(TimeoutError, match="slow_call timed out"):
            await with_deadline(asyncio.sleep(1.0), 0.01, "slow_call")
