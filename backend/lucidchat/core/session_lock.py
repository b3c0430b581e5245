"""Per-room locks serializing turns and score updates inside this process.

Database writes additionally take ``SELECT ... FOR UPDATE`` on the room row;
this registry keeps two coroutines of the same process from interleaving a
turn's reads and writes of one room.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SessionLockRegistry:
    def __init__(self):
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, room_id: int) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, room_id: int) -> AsyncIterator[None]:
        lock = self._lock_for(room_id)
        async with lock:
            yield

    def is_locked(self, room_id: int) -> bool:
        lock = self._locks.get(room_id)
        return lock is not None and lock.locked()


session_locks = SessionLockRegistry()
