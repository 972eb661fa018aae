from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ChannelThrottle:
    """Caps in-flight calls and spaces call starts to at most `max_per_second`."""

    def __init__(self, max_concurrency: int, max_per_second: float | None = None) -> None:
        self.max_concurrency = max(max_concurrency, 1)
        self.max_per_second = max_per_second if max_per_second and max_per_second > 0 else None
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._interval = 1.0 / self.max_per_second if self.max_per_second else 0.0
        self._lock = asyncio.Lock()
        self._next_start = 0.0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._semaphore:
            if self._interval:
                await self._wait_for_turn()
            yield

    async def _wait_for_turn(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock:
            now = loop.time()
            start_at = max(now, self._next_start)
            self._next_start = start_at + self._interval
        delay = start_at - now
        if delay > 0:
            await asyncio.sleep(delay)
