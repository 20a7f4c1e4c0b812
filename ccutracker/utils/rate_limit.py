"""Per-host request spacing."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from urllib.parse import urlparse


class RateLimiter:
    """Keep at least ``1 / rate`` seconds between requests to the same host."""

    def __init__(self, *, rate: float = 2.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = 1.0 / rate if rate > 0 else 0.0
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._next_slot: dict[str, float] = {}

    async def wait(self, url: str) -> None:
        host = urlparse(url).netloc
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            delay = self._next_slot.get(host, 0.0) - self._clock()
            if delay > 0:
                await asyncio.sleep(delay)
            self._next_slot[host] = self._clock() + self.interval
