"""
Lock strategy factory.
Configures which entity lock strategy to use.
"""

from typing import Optional

from settlement.core.config import get_settings
from settlement.services.interfaces.locking import LockStrategy
from settlement.services.interfaces.local_locks import LocalLockStrategy


def build_lock_strategy() -> LockStrategy:
    """
    Build the configured lock strategy.

    Strategy selection:
    - local: asyncio locks (single process, default)
    - redis: Redis locks (several workers behind a load balancer)

    Can be overridden via the LOCK_STRATEGY env var.
    """
    settings = get_settings()

    if settings.LOCK_STRATEGY == "redis":
        # Imported lazily so the local strategy never opens a Redis pool
        from settlement.services.lock_service import RedisLockStrategy

        return RedisLockStrategy(
            timeout=settings.LOCK_TIMEOUT_SECONDS,
            ttl=settings.LOCK_TTL_SECONDS,
        )
    return LocalLockStrategy(timeout=settings.LOCK_TIMEOUT_SECONDS)


# Singleton instance
_strategy: Optional[LockStrategy] = None


def get_lock_strategy() -> LockStrategy:
    """Get lock strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = build_lock_strategy()
    return _strategy


async def reset_lock_strategy() -> None:
    """Drop the singleton (application shutdown, test isolation)."""
    global _strategy
    if _strategy is not None:
        await _strategy.close()
    _strategy = None
