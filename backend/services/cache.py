"""
Response and query caching.

Short-lived memoization of chat answers, vector-search result sets and
embeddings on top of the cache port. Keys are content hashes of the
triggering request, so identical requests inside the TTL are served from
cache.

Features:
- Per-kind TTLs (chat 5 min, vector search 10 min, embeddings 30 min)
- Get-or-compute helper for wrapping expensive calls
- Background sweep of expired entries independent of read-time expiry
"""
import hashlib
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel

from backend.adapters.ports import CacheStore
from backend.core.scheduler import IntervalTicker, PeriodicRunner, Ticker

logger = structlog.get_logger().bind(service="response_cache")

T = TypeVar("T")

CHAT_PREFIX = "chat"
VECTOR_PREFIX = "vector"
EMBEDDING_PREFIX = "embedding"
CACHE_PREFIXES = (CHAT_PREFIX, VECTOR_PREFIX, EMBEDDING_PREFIX)


def cache_key(*args: Any, **kwargs: Any) -> str:
    """
    Generate a cache key from request parts.

    Argument order is significant: the same values in a different order
    produce a different key.
    """
    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True, default=str)
    return hashlib.sha256(key_data.encode()).hexdigest()


class ResponseCacheStats(BaseModel):
    chat_entries: int = 0
    vector_entries: int = 0
    embedding_entries: int = 0
    hits: int = 0
    misses: int = 0


class ResponseCache:
    """Typed memoization layer over the cache port."""

    CHAT_TTL = 300  # 5 minutes
    VECTOR_TTL = 600  # 10 minutes
    EMBEDDING_TTL = 1800  # 30 minutes
    SWEEP_INTERVAL = 300  # 5 minutes

    def __init__(
        self,
        store: CacheStore,
        chat_ttl: int = CHAT_TTL,
        vector_ttl: int = VECTOR_TTL,
        embedding_ttl: int = EMBEDDING_TTL,
        sweep_interval: int = SWEEP_INTERVAL,
    ):
        self.store = store
        self.chat_ttl = chat_ttl
        self.vector_ttl = vector_ttl
        self.embedding_ttl = embedding_ttl
        self.sweep_interval = sweep_interval
        self.hits = 0
        self.misses = 0
        self._sweeper: Optional[PeriodicRunner] = None

    # =========================================================================
    # Keys
    # =========================================================================

    @staticmethod
    def chat_key(profile_id: str, provider: str, model: str, messages: list[dict[str, Any]]) -> str:
        last_message = messages[-1].get("content", "") if messages else ""
        return cache_key(profile_id, provider, model, last_message)

    @staticmethod
    def vector_key(profile_id: Optional[str], query: str, limit: int) -> str:
        return cache_key(profile_id or "", query, limit)

    @staticmethod
    def embedding_key(text: str) -> str:
        return cache_key(text)

    # =========================================================================
    # Generic access
    # =========================================================================

    async def _get(self, prefix: str, key: str) -> Any:
        value = await self.store.get(key, prefix=prefix)
        if value is None:
            self.misses += 1
            logger.debug("response_cache_miss", prefix=prefix, key=key[:16])
        else:
            self.hits += 1
            logger.debug("response_cache_hit", prefix=prefix, key=key[:16])
        return value

    async def get_or_compute(
        self,
        prefix: str,
        key: str,
        ttl: int,
        compute: Callable[[], Awaitable[T]],
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it."""
        cached = await self._get(prefix, key)
        if cached is not None:
            return cached
        value = await compute()
        if value is not None:
            await self.store.set(key, value, ttl=ttl, prefix=prefix)
        return value

    # =========================================================================
    # Chat responses
    # =========================================================================

    async def get_chat_response(
        self, profile_id: str, provider: str, model: str, messages: list[dict[str, Any]]
    ) -> Optional[dict[str, Any]]:
        return await self._get(CHAT_PREFIX, self.chat_key(profile_id, provider, model, messages))

    async def set_chat_response(
        self,
        profile_id: str,
        provider: str,
        model: str,
        messages: list[dict[str, Any]],
        response: dict[str, Any],
    ) -> None:
        key = self.chat_key(profile_id, provider, model, messages)
        await self.store.set(key, response, ttl=self.chat_ttl, prefix=CHAT_PREFIX)

    # =========================================================================
    # Vector search results
    # =========================================================================

    async def get_vector_search(self, profile_id: Optional[str], query: str, limit: int) -> Optional[list[Any]]:
        return await self._get(VECTOR_PREFIX, self.vector_key(profile_id, query, limit))

    async def set_vector_search(self, profile_id: Optional[str], query: str, limit: int, results: list[Any]) -> None:
        key = self.vector_key(profile_id, query, limit)
        await self.store.set(key, results, ttl=self.vector_ttl, prefix=VECTOR_PREFIX)

    # =========================================================================
    # Embeddings
    # =========================================================================

    async def get_embedding(self, text: str) -> Optional[list[float]]:
        return await self._get(EMBEDDING_PREFIX, self.embedding_key(text))

    async def set_embedding(self, text: str, embedding: list[float]) -> None:
        await self.store.set(self.embedding_key(text), embedding, ttl=self.embedding_ttl, prefix=EMBEDDING_PREFIX)

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def get_stats(self) -> ResponseCacheStats:
        return ResponseCacheStats(
            chat_entries=await self.store.count(CHAT_PREFIX),
            vector_entries=await self.store.count(VECTOR_PREFIX),
            embedding_entries=await self.store.count(EMBEDDING_PREFIX),
            hits=self.hits,
            misses=self.misses,
        )

    async def clear(self) -> None:
        for prefix in CACHE_PREFIXES:
            await self.store.clear_by_prefix(prefix)
        logger.info("response_cache_cleared")

    async def sweep(self) -> int:
        removed = await self.store.purge_expired(CACHE_PREFIXES)
        if removed:
            logger.info("response_cache_swept", entries_removed=removed)
        return removed

    def start_sweeper(self, ticker: Optional[Ticker] = None) -> PeriodicRunner:
        """Start the background sweep. Idempotent."""
        if self._sweeper is None or not self._sweeper.running:
            self._sweeper = PeriodicRunner(
                self.sweep,
                ticker or IntervalTicker(self.sweep_interval),
                name="response_cache_sweep",
                run_immediately=False,
            )
            self._sweeper.start()
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()
            await self._sweeper.join()
            self._sweeper = None
