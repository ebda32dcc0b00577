import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class WishlistLocks:
    """Per-wishlist mutual exclusion for structural changes.

    Locks are held weakly, so a wishlist nobody is mutating costs nothing.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, wishlist_id: str) -> asyncio.Lock:
        lock = self._locks.get(wishlist_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[wishlist_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, wishlist_id: str) -> AsyncIterator[None]:
        lock = self.lock_for(wishlist_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


wishlist_locks = WishlistLocks()
