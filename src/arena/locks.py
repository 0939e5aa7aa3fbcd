"""In-process lock registry for single-writer-per-resource orchestration."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator, Hashable, Optional


class KeyedLocks:
    """
    One lock per resource key (game mode, tournament id, ...).

    Locks are created on first use. Two callers asking for the same key get
    the same lock object until the key is discarded, which only happens once
    its resource is gone for good.
    """

    def __init__(self, reentrant: bool = False):
        self.reentrant = reentrant
        self._locks: dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, key: Hashable):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock() if self.reentrant else threading.Lock()
                self._locks[key] = lock
            return lock

    def discard(self, key: Hashable) -> bool:
        """Drop the lock for ``key`` unless someone holds it. Returns True if dropped."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None or not lock.acquire(blocking=False):
                return False
            del self._locks[key]
            lock.release()
            return True

    @contextmanager
    def hold(self, key: Hashable, timeout_seconds: Optional[float] = None) -> Generator[bool, None, None]:
        """
        Hold the lock for ``key`` for the life of this context.

        Yields:
            True once the lock is acquired.

        Raises:
            TimeoutError: if the lock cannot be acquired before timeout.
        """
        lock = self.get(key)
        acquired = lock.acquire(timeout=-1 if timeout_seconds is None else max(timeout_seconds, 0.0))
        if not acquired:
            raise TimeoutError(f"Could not acquire lock for {key!r}")
        try:
            yield True
        finally:
            lock.release()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._locks

    def __len__(self) -> int:
        return len(self._locks)
