"""Cache interface with injectable backing stores.

``InMemoryCache`` serves single-instance deployments; ``RedisCache`` shares
entries between instances. Both invalidate by exact key or glob pattern
(``"rate:category:*"``). Values must be JSON-serializable.
"""

from __future__ import annotations

import fnmatch
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import redis.asyncio as aioredis


class Cache(Protocol):
    """Async key/value cache."""

    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def invalidate_pattern(self, pattern: str) -> int:
        ...

    async def clear(self) -> None:
        ...


@dataclass
class _Entry:
    value: Any
    expires_at: float


class InMemoryCache:
    """Process-local TTL cache.

    Expired entries are evicted lazily on read; nothing runs in the background.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def invalidate_pattern(self, pattern: str) -> int:
        matched = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Redis-backed cache shared between service instances."""

    def __init__(self, redis: Any, default_ttl: float = 300.0, prefix: str = "commission:"):
        self.redis = redis
        self.default_ttl = default_ttl
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, default_ttl: float = 300.0) -> RedisCache:
        return cls(aioredis.from_url(url, decode_responses=True), default_ttl=default_ttl)

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self.prefix + key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        await self.redis.set(self.prefix + key, json.dumps(value), ex=max(int(ttl), 1))

    async def delete(self, key: str) -> None:
        await self.redis.delete(self.prefix + key)

    async def invalidate_pattern(self, pattern: str) -> int:
        keys = [k async for k in self.redis.scan_iter(match=self.prefix + pattern)]
        if not keys:
            return 0
        return int(await self.redis.delete(*keys))

    async def clear(self) -> None:
        await self.invalidate_pattern("*")
