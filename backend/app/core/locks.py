"""
Per-key async locks with a bounded wait.

One asyncio.Lock per key (trip+seat, booking id, user id), created on
demand and dropped once nobody holds or waits on it, so unrelated keys
never contend and the registry does not grow with history.

These locks serialize callers inside one process. Cross-process safety
comes from the database: the seat_holds primary key and the version
column on bookings.
"""

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

from app.core.exceptions import BusyError
from app.core.logging import get_logger
from app.core.metrics import lock_timeouts, lock_wait_latency

logger = get_logger(__name__)


class KeyedLocks:
    def __init__(self, kind: str, timeout: float):
        self.kind = kind
        self.timeout = timeout
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """
        Exclusive section for `key`.
        Raises BusyError if the lock is not acquired within `timeout`.
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        started = time.perf_counter()
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                lock_timeouts.labels(kind=self.kind).inc()
                logger.warning("lock_timeout", kind=self.kind, key=str(key), timeout=self.timeout)
                raise BusyError(f"{self.kind} {key} is busy, please retry")

            lock_wait_latency.labels(kind=self.kind).observe(time.perf_counter() - started)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
