"""
Pass locks for the aggregation scheduler.

A pass holds a lock for its scope for its whole duration. Acquisition never
blocks: a tick that finds its scope busy is skipped, not queued.
"""

import threading
from abc import ABC, abstractmethod

ALL_SYMBOLS = "*"


class PassLock(ABC):
    """Non-blocking mutual exclusion for aggregation passes."""

    @abstractmethod
    def try_acquire(self, scope: str = ALL_SYMBOLS) -> bool:
        """Take the lock for ``scope``; False if it is already held."""

    @abstractmethod
    def release(self, scope: str = ALL_SYMBOLS) -> None:
        """Release a lock previously taken for ``scope``."""

    @abstractmethod
    def is_held(self, scope: str = ALL_SYMBOLS) -> bool:
        """Whether a pass currently holds ``scope``."""


class GlobalPassLock(PassLock):
    """One process-wide lock; every scope maps onto it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_acquire(self, scope: str = ALL_SYMBOLS) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self, scope: str = ALL_SYMBOLS) -> None:
        self._lock.release()

    def is_held(self, scope: str = ALL_SYMBOLS) -> bool:
        return self._lock.locked()


class SymbolShardedPassLock(PassLock):
    """
    One lock per symbol.

    Symbols share no snapshot state, so passes over different symbols may run
    concurrently while each symbol's events stay strictly serialized. Passes
    using this lock must name a symbol.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, scope: str) -> threading.Lock:
        if scope == ALL_SYMBOLS:
            raise ValueError("SymbolShardedPassLock requires a symbol scope")
        with self._guard:
            return self._locks.setdefault(scope, threading.Lock())

    def try_acquire(self, scope: str = ALL_SYMBOLS) -> bool:
        return self._lock_for(scope).acquire(blocking=False)

    def release(self, scope: str = ALL_SYMBOLS) -> None:
        self._lock_for(scope).release()

    def is_held(self, scope: str = ALL_SYMBOLS) -> bool:
        return self._lock_for(scope).locked()

    def symbols(self) -> list[str]:
        """Symbols that have been locked at least once."""
        with self._guard:
            return sorted(self._locks)


def create_pass_lock(strategy: str) -> PassLock:
    """Build the pass lock named by the ``lock_strategy`` setting."""
    if strategy == "global":
        return GlobalPassLock()
    if strategy == "symbol":
        return SymbolShardedPassLock()
    raise ValueError(f"Unknown lock strategy: {strategy}")
