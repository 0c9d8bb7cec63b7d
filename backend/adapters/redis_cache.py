"""
Redis-backed cache adapters: self-hosted Redis and managed Upstash Redis.
"""
from typing import Any, Optional

import redis.asyncio as aioredis

from backend.adapters.cache import BaseCacheAdapter
from backend.adapters.types import CacheStats
from backend.core.exceptions import ConfigurationError


class RedisCacheAdapter(BaseCacheAdapter):
    """
    Cache adapter on redis.asyncio.

    Entries are written with SETEX so Redis expires them natively; the
    envelope's TTL is still checked on read.
    """

    provider = "redis"

    def __init__(
        self,
        url: Optional[str] = None,
        password: Optional[str] = None,
        db: int = 0,
        client: Optional[aioredis.Redis] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.url = url
        self.password = password
        self.db = db
        self._client = client

    @property
    def client(self) -> aioredis.Redis:
        """Lazy-loaded Redis client."""
        if self._client is None:
            if not self.url:
                raise ConfigurationError("Redis cache requires a URL", provider=self.provider)
            self._client = aioredis.from_url(
                self.url,
                password=self.password,
                db=self.db,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        return self._client

    async def _read(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def _write(self, key: str, payload: str, ttl: int) -> None:
        await self.client.setex(key, ttl, payload)

    async def _remove(self, keys: list[str]) -> None:
        if keys:
            await self.client.delete(*keys)

    async def _scan(self, pattern: str) -> list[str]:
        return [key async for key in self.client.scan_iter(match=pattern)]

    async def _stats(self) -> CacheStats:
        total_keys = await self.client.dbsize()
        info = await self.client.info("memory")
        return CacheStats(
            total_keys=total_keys,
            memory_usage=info.get("used_memory_human", "unknown"),
            connected=await self.is_connected(),
        )

    async def is_connected(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            self.logger.warning("cache_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class UpstashCacheAdapter(RedisCacheAdapter):
    """Managed Upstash Redis. Both URL and password are mandatory."""

    provider = "upstash"

    def __init__(self, url: Optional[str] = None, password: Optional[str] = None, **kwargs: Any):
        if not url or not password:
            raise ConfigurationError("Upstash cache requires both URL and password", provider=self.provider)
        super().__init__(url=url, password=password, **kwargs)

    async def _stats(self) -> CacheStats:
        return CacheStats(
            total_keys=await self.client.dbsize(),
            memory_usage="managed by upstash",
            connected=await self.is_connected(),
        )
