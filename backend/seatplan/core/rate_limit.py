"""
Per-actor request rate limiting over an injected counter store.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Protocol, Tuple

from seatplan.core.clock import Clock
from seatplan.core.errors import RateLimitExceededError
from seatplan.core.roles import Actor, Role


class RateLimitStore(Protocol):
    async def get(self, key: str) -> int: ...

    async def increment(self, key: str, window_seconds: int) -> int: ...

    async def expire(self, key: str) -> None: ...


class InMemoryRateLimitStore:
    """Fixed-window counters kept in process memory."""

    def __init__(self, clock: Clock):
        self.clock = clock
        self._entries: Dict[str, Tuple[int, datetime]] = {}

    async def get(self, key: str) -> int:
        entry = self._entries.get(key)
        if entry is None or entry[1] <= self.clock.now():
            return 0
        return entry[0]

    async def increment(self, key: str, window_seconds: int) -> int:
        now = self.clock.now()
        count, resets_at = self._entries.get(key, (0, now))
        if resets_at <= now:
            count, resets_at = 0, now + timedelta(seconds=window_seconds)
        count += 1
        self._entries[key] = (count, resets_at)
        return count

    async def expire(self, key: str) -> None:
        self._entries.pop(key, None)


@dataclass(frozen=True)
class RateLimitStatus:
    limit: int
    remaining: int


class RateLimiter:
    def __init__(self, store: RateLimitStore, limit: int, admin_limit: int, window_seconds: int = 60):
        self.store = store
        self.limit = limit
        self.admin_limit = admin_limit
        self.window_seconds = window_seconds

    def limit_for(self, actor: Actor) -> int:
        return self.admin_limit if actor.role.at_least(Role.ADMIN) else self.limit

    async def check(self, actor: Actor) -> RateLimitStatus:
        limit = self.limit_for(actor)
        count = await self.store.increment(f"rate:{actor.id}", self.window_seconds)
        if count > limit:
            raise RateLimitExceededError(
                "Rate limit exceeded",
                actor_id=actor.id, limit=limit, retry_after=self.window_seconds,
            )
        return RateLimitStatus(limit=limit, remaining=limit - count)
