"""Per-slot asyncio locks"""
import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Hashable

from domain.repositories import SlotLockProvider


class SlotLocks(SlotLockProvider):
    """One asyncio.Lock per key, typically (facility_id, date).

    Keys are acquired in sorted order so callers holding two partitions
    (a booking moved to another date) cannot deadlock each other. Locks
    nobody holds are dropped from the registry.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: Hashable):
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        async with AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            yield
