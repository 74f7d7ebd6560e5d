"""
Distributed lock strategy for multi-process deployments.
Implements LockStrategy using Redis locks.

Each entity key maps to one Redis lock with a TTL. The TTL bounds how long
a crashed worker can block an entity; it must stay well above the longest
settlement transaction. The database constraints (version columns, CHECK
constraints, the reserved-seat unique index) still reject any write that
slips past an expired lock.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from redis.exceptions import LockError, RedisError

from settlement.core.exceptions import ConcurrentModification
from settlement.core.logging import get_logger
from settlement.core.metrics import lock_wait
from settlement.infrastructure.redis_client import RedisClient, get_redis
from settlement.services.interfaces.locking import LockStrategy

logger = get_logger(__name__)

KEY_PREFIX = "settlement:lock:"


class RedisLockStrategy(LockStrategy):
    """
    Redis-backed entity locks.

    Use when:
    - several API workers write to the same database
    - a single process lock would not see the other writers
    """

    name = "redis"

    def __init__(self, timeout: float = 10.0, ttl: float = 30.0):
        self.timeout = timeout
        self.ttl = ttl
        self.redis = get_redis()

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        acquired = []
        started = time.perf_counter()
        try:
            for key in ordered:
                lock = self.redis.lock(
                    KEY_PREFIX + key,
                    timeout=self.ttl,
                    blocking_timeout=self.timeout,
                )
                try:
                    got = await lock.acquire()
                except RedisError as e:
                    logger.error("lock_backend_error", key=key, error=str(e))
                    raise ConcurrentModification(key.split(":", 1)[0], key) from e
                if not got:
                    logger.warning("lock_timeout", key=key, timeout=self.timeout)
                    raise ConcurrentModification(key.split(":", 1)[0], key)
                acquired.append(lock)
            lock_wait.observe(time.perf_counter() - started)
            yield
        finally:
            for lock in reversed(acquired):
                try:
                    await lock.release()
                except LockError:
                    # TTL expired while held; the database constraints still apply
                    logger.warning("lock_expired_before_release", key=lock.name)

    async def close(self) -> None:
        await RedisClient.close()
