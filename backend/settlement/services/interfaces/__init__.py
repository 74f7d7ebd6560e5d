"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .locking import LockStrategy
from .local_locks import LocalLockStrategy

__all__ = ['LockStrategy', 'LocalLockStrategy']
