"""
Backend selection for the cache and vector ports.

The selector turns Settings into concrete adapters and records how it got
there as a tagged result: ``Resolved`` when the configured provider is used,
``Fallback`` when another one had to stand in. Cache problems always fall
back to the in-process cache. Vector problems fall back only to the other
fully configured vector backend, otherwise a ConfigurationError is raised at
first use.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

import structlog

from backend.adapters.cache import MemoryCacheAdapter
from backend.adapters.memory_vector import MemoryVectorStore
from backend.adapters.pgvector_store import PgVectorStore
from backend.adapters.redis_cache import RedisCacheAdapter, UpstashCacheAdapter
from backend.adapters.redis_vector import RedisVectorStore
from backend.adapters.types import CacheAdapter, VectorStoreAdapter
from backend.core.config import Settings
from backend.core.exceptions import ConfigurationError

logger = structlog.get_logger().bind(component="backend_selector")

VECTOR_ALTERNATES = {
    "pgvector": "redis",
    "redis": "pgvector",
}


@dataclass(frozen=True)
class Resolved:
    kind: str
    provider: str


@dataclass(frozen=True)
class Fallback:
    kind: str
    requested: str
    provider: str
    reason: str


Resolution = Union[Resolved, Fallback]


class BackendSelector:
    """Resolves and owns one cache adapter and one vector store adapter."""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time):
        self.settings = settings
        self._clock = clock
        self._cache: Optional[CacheAdapter] = None
        self._vector: Optional[VectorStoreAdapter] = None
        self.cache_resolution: Optional[Resolution] = None
        self.vector_resolution: Optional[Resolution] = None
        self._cache_lock = asyncio.Lock()
        self._vector_lock = asyncio.Lock()

    # =========================================================================
    # Cache
    # =========================================================================

    async def resolve_cache(self) -> CacheAdapter:
        async with self._cache_lock:
            if self._cache is None:
                self._cache, self.cache_resolution = await self._select_cache()
                _log_resolution(self.cache_resolution)
        return self._cache

    def _memory_cache(self) -> MemoryCacheAdapter:
        return MemoryCacheAdapter(
            default_ttl=self.settings.cache_default_ttl,
            max_ttl=self.settings.cache_max_ttl,
            clock=self._clock,
        )

    def _build_cache(self, provider: str) -> CacheAdapter:
        s = self.settings
        common = {"default_ttl": s.cache_default_ttl, "max_ttl": s.cache_max_ttl, "clock": self._clock}
        if provider == "redis":
            if not s.cache_url:
                raise ConfigurationError("CACHE_URL is not set", provider="redis")
            return RedisCacheAdapter(url=s.cache_url, password=s.cache_password, db=s.cache_db, **common)
        if provider == "upstash":
            return UpstashCacheAdapter(url=s.cache_url, password=s.cache_password, **common)
        raise ConfigurationError(f"Unknown cache provider: {provider}", provider=provider)

    async def _select_cache(self) -> tuple[CacheAdapter, Resolution]:
        requested = self.settings.cache_provider
        if requested == "memory":
            return self._memory_cache(), Resolved(kind="cache", provider="memory")

        try:
            adapter = self._build_cache(requested)
        except ConfigurationError as e:
            return self._memory_cache(), Fallback(
                kind="cache", requested=requested, provider="memory", reason=str(e)
            )

        if await adapter.is_connected():
            return adapter, Resolved(kind="cache", provider=requested)

        await adapter.close()
        return self._memory_cache(), Fallback(
            kind="cache", requested=requested, provider="memory", reason=f"{requested} is unreachable"
        )

    # =========================================================================
    # Vector store
    # =========================================================================

    async def resolve_vector_store(self) -> VectorStoreAdapter:
        async with self._vector_lock:
            if self._vector is None:
                self._vector, self.vector_resolution = self._select_vector()
                _log_resolution(self.vector_resolution)
        return self._vector

    def _vector_configured(self, provider: str) -> bool:
        if provider == "pgvector":
            return bool(self.settings.vector_database_url)
        if provider == "redis":
            return bool(self.settings.vector_redis_url)
        return provider == "memory"

    def _build_vector(self, provider: str) -> VectorStoreAdapter:
        s = self.settings
        if provider == "pgvector":
            return PgVectorStore(database_url=s.vector_database_url, dimension=s.vector_dimension)
        if provider == "redis":
            return RedisVectorStore(url=s.vector_redis_url, dimension=s.vector_dimension)
        return MemoryVectorStore()

    def _select_vector(self) -> tuple[VectorStoreAdapter, Resolution]:
        requested = self.settings.vector_provider
        if requested == "memory":
            return self._build_vector("memory"), Resolved(kind="vector", provider="memory")

        if requested not in VECTOR_ALTERNATES:
            raise ConfigurationError(f"Unknown vector provider: {requested}", provider=requested)

        if self._vector_configured(requested):
            return self._build_vector(requested), Resolved(kind="vector", provider=requested)

        alternate = VECTOR_ALTERNATES[requested]
        if self._vector_configured(alternate):
            return self._build_vector(alternate), Fallback(
                kind="vector",
                requested=requested,
                provider=alternate,
                reason=f"{requested} is not configured",
            )

        logger.error("vector_store_unconfigured", requested=requested, alternate=alternate)
        raise ConfigurationError(
            f"No vector store configured: {requested} and {alternate} both lack connection settings",
            provider=requested,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def reset(self) -> None:
        """Close and forget resolved adapters so the next call re-resolves."""
        if self._cache is not None:
            await self._cache.close()
        if self._vector is not None:
            await self._vector.close()
        self._cache = None
        self._vector = None
        self.cache_resolution = None
        self.vector_resolution = None

    async def close(self) -> None:
        await self.reset()


def _log_resolution(resolution: Resolution) -> None:
    if isinstance(resolution, Fallback):
        logger.warning(
            "backend_fallback",
            kind=resolution.kind,
            requested=resolution.requested,
            provider=resolution.provider,
            reason=resolution.reason,
        )
    else:
        logger.info("backend_resolved", kind=resolution.kind, provider=resolution.provider)
