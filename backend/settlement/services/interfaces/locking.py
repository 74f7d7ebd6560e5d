"""
Entity lock strategy interface.
Allows swapping between single-process and multi-process serialization.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Iterable


class LockStrategy(ABC):
    """
    Interface for per-entity critical sections.

    Implementations:
    - LocalLockStrategy: asyncio locks, one process
    - RedisLockStrategy: Redis locks with a TTL, many processes

    Keys look like "tier:12" or "chart:3". Implementations must acquire
    them in sorted order so two writers never wait on each other crosswise.
    """

    name = "abstract"

    @abstractmethod
    def hold(self, keys: Iterable[str]) -> AsyncContextManager[None]:
        """
        Acquire every lock in `keys` for the duration of the block.

        Raises:
            ConcurrentModification if a lock cannot be acquired in time
        """

    async def close(self) -> None:
        """Release any connections held by the strategy."""
