"""Redis-backed claims for de-duplicating scheduled work."""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis

from core.config import settings

if TYPE_CHECKING:
    from redis import Redis


class RedisCache:
    """Redis client for one-shot claims."""

    _instance: RedisCache | None = None
    _client: Redis[str] | None = None

    def __new__(cls) -> RedisCache:
        """Singleton pattern for connection reuse."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def client(self) -> Redis[str]:
        """Lazy connection initialization."""
        if self._client is None:
            self._client = redis.from_url(settings.redis_url, decode_responses=True)
        return self._client

    def claim(self, key: str, ttl: int | None = None) -> bool:
        """
        Claim a key once. Returns True only for the first caller.

        The claim expires after ``ttl`` seconds so stale keys do not pile up.
        """
        ttl = ttl or settings.schedule_claim_ttl_seconds
        return bool(self.client.set(key, "1", nx=True, ex=ttl))

    def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None


def create_cache() -> RedisCache | None:
    """Create cache instance, returning None if Redis unavailable."""
    try:
        cache = RedisCache()
        cache.client.ping()
        return cache
    except redis.ConnectionError:
        return None
