# =============================================================================
# Buried Treasure - Keyed Locks
# =============================================================================
"""
A table of locks keyed by identity (or tile), created on first use.

Critical sections in the engine are synchronous and short, so plain
threading locks are used. They are never held across an await.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """Per-key mutual exclusion without a global lock on the data"""

    def __init__(self):
        self._table_lock = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._table_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._locks)
