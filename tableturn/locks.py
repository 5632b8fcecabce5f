"""
Per-table serialization.

Every write path that touches a table's match or queue holds that
table's lock, so one process never interleaves two rotations on the
same table. Locks are re-entrant: a rotation that starts a follow-up
match re-acquires the lock it already holds.
"""
import threading
from contextlib import contextmanager
from typing import Dict


class TableLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, table_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(table_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[table_id] = lock
            return lock

    @contextmanager
    def hold(self, table_id: str):
        lock = self.get(table_id)
        with lock:
            yield

    def __len__(self):
        return len(self._locks)
