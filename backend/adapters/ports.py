"""
Cache and vector ports used by services.

Both resolve their backend through the BackendSelector on first use. The
vector port owns dimension normalization and turns backend read failures
into empty results; configuration errors still propagate.
"""
from typing import Any, Optional, Sequence

import structlog

from backend.adapters.factory import BackendSelector
from backend.adapters.types import (
    CacheAdapter,
    CacheStats,
    Vector,
    VectorSearchResult,
    VectorStoreAdapter,
    normalize_vector,
)
from backend.core.exceptions import ConfigurationError, VectorStoreError

logger = structlog.get_logger().bind(component="ports")


class CacheStore:
    """Cache port. Never raises for backend failures."""

    def __init__(self, selector: BackendSelector):
        self._selector = selector

    async def adapter(self) -> CacheAdapter:
        return await self._selector.resolve_cache()

    async def get(self, key: str, prefix: Optional[str] = None) -> Any:
        return await (await self.adapter()).get(key, prefix=prefix)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, prefix: Optional[str] = None) -> None:
        await (await self.adapter()).set(key, value, ttl=ttl, prefix=prefix)

    async def delete(self, key: str, prefix: Optional[str] = None) -> None:
        await (await self.adapter()).delete(key, prefix=prefix)

    async def clear_by_prefix(self, prefix: str) -> None:
        await (await self.adapter()).clear_by_prefix(prefix)

    async def purge_expired(self, prefixes: Optional[Sequence[str]] = None) -> int:
        return await (await self.adapter()).purge_expired(prefixes)

    async def count(self, prefix: Optional[str] = None) -> int:
        return await (await self.adapter()).count(prefix)

    async def get_stats(self) -> CacheStats:
        return await (await self.adapter()).get_stats()

    async def is_connected(self) -> bool:
        return await (await self.adapter()).is_connected()


class VectorStore:
    """Vector port with fixed-dimension normalization."""

    def __init__(self, selector: BackendSelector, dimension: int):
        self._selector = selector
        self.dimension = dimension

    async def adapter(self) -> VectorStoreAdapter:
        """Resolve the backend. Raises ConfigurationError when none is configured."""
        return await self._selector.resolve_vector_store()

    def _normalize(self, vectors: list[Vector]) -> list[Vector]:
        return [
            Vector(id=v.id, values=normalize_vector(v.values, self.dimension), metadata=v.metadata)
            for v in vectors
        ]

    async def create_collection(self, name: str, dimension: Optional[int] = None) -> None:
        await (await self.adapter()).create_collection(name, dimension or self.dimension)

    async def upsert(
        self,
        collection: str,
        vectors: list[Vector],
        extra_metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        adapter = await self.adapter()
        await adapter.upsert(collection, self._normalize(vectors), extra_metadata=extra_metadata)

    async def query(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict[str, Any]] = None,
        raise_errors: bool = False,
    ) -> list[VectorSearchResult]:
        """
        Nearest neighbours of ``query_vector``, best first.

        A backend failure is logged and returned as an empty list, or raised
        as VectorStoreError when ``raise_errors`` is set so callers can tell
        an outage from a query with no matches.
        """
        adapter = await self.adapter()
        try:
            results = await adapter.query(
                collection,
                normalize_vector(query_vector, self.dimension),
                top_k=top_k,
                filter=filter,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("vector_query_failed", collection=collection, error=str(e))
            if raise_errors:
                raise VectorStoreError(f"Query on {collection} failed: {e}", collection=collection) from e
            return []
        return sorted(results, key=lambda r: r.score, reverse=True)

    async def list_vectors(self, collection: str, filter: Optional[dict[str, Any]] = None) -> list[Vector]:
        adapter = await self.adapter()
        try:
            return await adapter.list_vectors(collection, filter=filter)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("vector_list_failed", collection=collection, error=str(e))
            return []

    async def delete(self, collection: str, ids: Optional[list[str]] = None) -> None:
        await (await self.adapter()).delete(collection, ids=ids)

    async def list_collections(self) -> list[str]:
        return await (await self.adapter()).list_collections()

    async def delete_collection(self, name: str) -> None:
        await (await self.adapter()).delete_collection(name)

    async def is_connected(self) -> bool:
        try:
            adapter = await self.adapter()
        except ConfigurationError:
            return False
        return await adapter.is_connected()
