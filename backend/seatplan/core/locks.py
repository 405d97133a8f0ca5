"""
Keyed mutual exclusion for the read-check-write sequences of the core.

Locks are created on demand per key ("table:<id>", "reservation:<id>", ...)
and dropped again once nobody holds or waits for them. Keys are always
acquired in sorted order, so two operations locking overlapping key sets
cannot deadlock.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Iterable, Optional


def table_key(table_id) -> str:
    return f"table:{table_id}"


def reservation_key(reservation_id) -> str:
    return f"reservation:{reservation_id}"


def customer_key(customer_id) -> str:
    return f"customer:{customer_id}"


def contact_key(value: Optional[str]) -> Optional[str]:
    return f"contact:{value}" if value else None


class KeyedLockRegistry:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, *keys: Optional[str]):
        ordered = sorted({k for k in keys if k})
        acquired = []
        for key in ordered:
            self._users[key] = self._users.get(key, 0) + 1
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            self._forget(ordered)

    def _forget(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)
