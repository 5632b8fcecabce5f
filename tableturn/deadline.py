"""
Cooperative deadlines for reads that must not block forever.

A Deadline is passed into a read loop, which checks it between store
calls and stops early once it has expired, keeping what it has read.
"""
import time
from typing import Callable, Optional


class DeadlineExceeded(Exception):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Operation exceeded its {timeout:g}s deadline")


class Deadline:
    def __init__(self, timeout: Optional[float], clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    @property
    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self):
        if self.expired:
            raise DeadlineExceeded(self.timeout)
