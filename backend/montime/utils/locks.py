"""Per-entity mutual exclusion for evaluation runs."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    """A lazily created ``asyncio.Lock`` per key.

    Evaluation of one entity (a server or a monitor) is a read-then-write
    sequence against the store: the debounce lookup followed by the alert
    insert, or the incident lookup followed by its close. Holding the entity's
    lock for the whole sequence keeps overlapping runs from interleaving.
    Locks are dropped again once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
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

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
