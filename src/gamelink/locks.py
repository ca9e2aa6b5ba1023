"""In-process keyed locks.

Serializes work on one key (a session id, a claim key) inside a single
worker process. Cross-process safety comes from the database guards
(compare-and-set updates and unique constraints); these locks only stop
coroutines in the same process from racing into those guards.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """A registry of asyncio locks, one per key, dropped when unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


session_locks = KeyedLock()
claim_locks = KeyedLock()
link_locks = KeyedLock()
