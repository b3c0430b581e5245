"""In-process event channel and fire-and-forget task tracking."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AffectionDeltaEvent:
    """Emitted after a turn completes; consumed at most once by the scorer."""

    room_id: int
    user_message: str


class AffectionEventQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[AffectionDeltaEvent] = asyncio.Queue(maxsize=maxsize)

    def emit(self, event: AffectionDeltaEvent) -> bool:
        """Enqueue without blocking. A full queue drops the event."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Affection queue full, dropping event for room %s", event.room_id)
            return False
        return True

    async def get(self) -> AffectionDeltaEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()


class BackgroundTasks:
    """Keeps strong references to fire-and-forget tasks until they finish."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending task (used at shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
