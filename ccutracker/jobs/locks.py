"""Single-instance guard for scheduled jobs."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator

import redis
from redis.exceptions import LockError

logger = logging.getLogger(__name__)


def redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://redis:6379/0")


@contextmanager
def single_instance(name: str, *, timeout: int, client: redis.Redis | None = None) -> Iterator[bool]:
    """Yield ``True`` when this process holds the job lock, ``False`` when another run does.

    The lock expires after ``timeout`` seconds so a crashed worker cannot
    block the job forever.
    """
    client = client or redis.Redis.from_url(redis_url())
    lock = client.lock(f"ccutracker:lock:{name}", timeout=timeout)
    if not lock.acquire(blocking=False):
        logger.warning("Skipping %s: previous run still holds the lock", name)
        yield False
        return
    try:
        yield True
    finally:
        try:
            lock.release()
        except LockError:
            logger.warning("Lock for %s expired before release", name)
