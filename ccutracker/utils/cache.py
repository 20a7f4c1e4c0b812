"""Keyed TTL cache that coalesces concurrent refreshes into one upstream call."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    value: Any
    fetched_at: float


class SingleFlightCache:
    """Process-local cache shielding a slow or rate-limited upstream.

    A value younger than ``ttl`` seconds is served as-is. The first caller
    after expiry runs ``loader``; callers arriving while that refresh is in
    flight await the same result instead of calling upstream again. When a
    refresh fails and an older value exists, the older value is served.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._inflight: dict[Hashable, asyncio.Future] = {}

    async def get(self, key: Hashable, loader: Callable[[], Awaitable[Any]], ttl: float) -> Any:
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.fetched_at < ttl:
            return entry.value

        pending = self._inflight.get(key)
        if pending is not None:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # The refresher was cancelled, not us: take over the refresh.
                if pending.cancelled() and not asyncio.current_task().cancelling():
                    return await self.get(key, loader, ttl)
                raise

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await loader()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            logger.error("Cache refresh failed for %r: %s", key, exc)
            if entry is not None:
                logger.warning("Serving stale value for %r", key)
                future.set_result(entry.value)
                return entry.value
            future.set_exception(exc)
            # Mark retrieved so an unobserved failure does not log at GC.
            future.exception()
            raise
        else:
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
            future.set_result(value)
            return value
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def peek(self, key: Hashable) -> CacheEntry | None:
        return self._entries.get(key)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
