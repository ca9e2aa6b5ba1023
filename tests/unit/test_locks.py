"""Unit tests for in-process keyed locks."""

import asyncio

import pytest

from gamelink.locks import KeyedLock


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("session-1"):
                order.append(f"{name}:enter")
                await asyncio.sleep(0.01)
                order.append(f"{name}:exit")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a:enter", "a:exit", "b:enter", "b:exit"],
            ["b:enter", "b:exit", "a:enter", "a:exit"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = KeyedLock()
        both = asyncio.Event()
        count = 0

        async def worker(key: str) -> None:
            nonlocal count
            async with locks.hold(key):
                count += 1
                if count == 2:
                    both.set()
                await asyncio.wait_for(both.wait(), timeout=1)

        await asyncio.gather(worker("x"), worker("y"))
        assert both.is_set()

    @pytest.mark.asyncio
    async def test_unused_locks_are_dropped(self):
        locks = KeyedLock()
        async with locks.hold("k"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        async with locks.hold("k"):
            pass
