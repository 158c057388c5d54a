"""
Per-key locks used to serialize check-then-act sequences on the queue.
"""

import threading
from contextlib import contextmanager


class KeyedLock:
    """Hands out one lock per key; keys are typically session IDs"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def _lock_for(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, key):
        lock = self._lock_for(key)
        with lock:
            yield


session_locks = KeyedLock()
