"""
Process-local coordination helpers.

These only deduplicate work inside one running bot. The invariants they
protect are always enforced again by a guarded database update.
"""

import asyncio
import contextlib
from typing import AsyncIterator, Dict, Hashable, Set


class KeyedLock:
    """An ``asyncio.Lock`` per key, discarded once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ActiveSet:
    """Set of workflow keys currently in progress (one game per user, one claim per message)."""

    def __init__(self):
        self._keys: Set[Hashable] = set()

    def claim(self, key: Hashable) -> bool:
        """Mark ``key`` active. False if it already was."""
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._keys.discard(key)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
