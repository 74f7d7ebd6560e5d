"""
In-process lock strategy using asyncio locks.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from settlement.core.exceptions import ConcurrentModification
from settlement.core.logging import get_logger
from settlement.core.metrics import lock_wait
from settlement.services.interfaces.locking import LockStrategy

logger = get_logger(__name__)


class LocalLockStrategy(LockStrategy):
    """
    One asyncio.Lock per entity key, created on demand and dropped
    once nobody holds or waits for it.

    Use when:
    - a single API process serves all writes
    - tests and development
    """

    name = "local"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users.get(key, 0) - 1
        if remaining <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._users[key] = remaining

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        checked_out: list[str] = []
        acquired: list[asyncio.Lock] = []
        started = time.perf_counter()
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    logger.warning("lock_timeout", key=key, timeout=self.timeout)
                    raise ConcurrentModification(key.split(":", 1)[0], key)
                acquired.append(lock)
            lock_wait.observe(time.perf_counter() - started)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)
