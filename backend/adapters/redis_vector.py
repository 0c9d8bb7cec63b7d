"""
Redis Stack vector store using redisvl HNSW indexes.

One search index per collection, named after the collection, over hashes
stored under ``<collection>:<id>``. RediSearch reports cosine *distance*
as ``vector_distance``; results are converted to ``1 - distance``.
"""
import json
import struct
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from redisvl.index import AsyncSearchIndex
from redisvl.query import VectorQuery

from backend.adapters.types import (
    DEFAULT_DIMENSION,
    Vector,
    VectorSearchResult,
    matches_filter,
)
from backend.core.exceptions import ConfigurationError, VectorStoreError

VECTOR_FIELD = "embedding"
OVERFETCH_FACTOR = 5


def pack_vector(values: list[float]) -> bytes:
    return struct.pack(f"{len(values)}f", *values)


def unpack_vector(raw: bytes) -> list[float]:
    return list(struct.unpack(f"{len(raw) // 4}f", raw))


def _decode(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisVectorStore:
    """Vector store on Redis Stack (RediSearch) via redisvl."""

    provider = "redis"

    def __init__(
        self,
        url: Optional[str] = None,
        dimension: int = DEFAULT_DIMENSION,
        client: Optional[aioredis.Redis] = None,
    ):
        if client is None and not url:
            raise ConfigurationError("Redis vector store requires a URL", provider=self.provider)
        self.url = url
        self.dimension = dimension
        self._client = client
        self._indexes: dict[str, AsyncSearchIndex] = {}
        self.logger = structlog.get_logger().bind(component="vector_store", provider=self.provider)

    @property
    def client(self) -> aioredis.Redis:
        """Lazy-loaded binary-safe Redis client."""
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=False, socket_connect_timeout=5)
        return self._client

    def _schema(self, name: str, dimension: int) -> dict:
        return {
            "index": {
                "name": name,
                "prefix": f"{name}:",
                "storage_type": "hash",
            },
            "fields": [
                {"name": "vector_id", "type": "tag"},
                {"name": "metadata", "type": "text"},
                {
                    "name": VECTOR_FIELD,
                    "type": "vector",
                    "attrs": {
                        "dims": dimension,
                        "algorithm": "HNSW",
                        "metric": "COSINE",
                        "datatype": "float32",
                    },
                },
            ],
        }

    async def _index(self, name: str, dimension: Optional[int] = None) -> AsyncSearchIndex:
        if name not in self._indexes:
            index = AsyncSearchIndex.from_dict(
                self._schema(name, dimension or self.dimension),
                redis_client=self.client,
            )
            if not await index.exists():
                await index.create(overwrite=False)
                self.logger.info("vector_index_created", collection=name)
            self._indexes[name] = index
        return self._indexes[name]

    def _key(self, collection: str, vector_id: str) -> str:
        return f"{collection}:{vector_id}"

    async def _keys(self, collection: str) -> list[bytes]:
        return [key async for key in self.client.scan_iter(match=f"{collection}:*")]

    async def create_collection(self, name: str, dimension: int = DEFAULT_DIMENSION) -> None:
        try:
            await self._index(name, dimension)
        except RedisError as e:
            raise VectorStoreError(f"Failed to create collection {name}: {e}", collection=name) from e

    async def upsert(
        self,
        collection: str,
        vectors: list[Vector],
        extra_metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if not vectors:
            return
        try:
            await self._index(collection)
            pipe = self.client.pipeline()
            for vector in vectors:
                metadata = {**vector.metadata, **(extra_metadata or {})}
                pipe.hset(
                    self._key(collection, vector.id),
                    mapping={
                        "vector_id": vector.id,
                        "metadata": json.dumps(metadata),
                        VECTOR_FIELD: pack_vector(vector.values),
                    },
                )
            await pipe.execute()
        except RedisError as e:
            raise VectorStoreError(f"Failed to upsert into {collection}: {e}", collection=collection) from e

        self.logger.debug("vectors_upserted", collection=collection, count=len(vectors))

    async def query(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorSearchResult]:
        index = await self._index(collection)

        # Metadata is stored as JSON text, so filters are applied after an overfetch
        query = VectorQuery(
            vector=query_vector,
            vector_field_name=VECTOR_FIELD,
            return_fields=["vector_id", "metadata"],
            num_results=top_k * OVERFETCH_FACTOR if filter else top_k,
        )
        rows = await index.query(query)

        results = []
        for row in rows:
            metadata = json.loads(_decode(row.get("metadata", "{}")))
            if not matches_filter(metadata, filter):
                continue
            distance = float(row.get("vector_distance", 1.0))
            results.append(
                VectorSearchResult(
                    id=_decode(row.get("vector_id", "")),
                    score=1 - distance,
                    metadata=metadata,
                )
            )

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:top_k]

    async def list_vectors(self, collection: str, filter: Optional[dict[str, Any]] = None) -> list[Vector]:
        vectors = []
        for key in await self._keys(collection):
            fields = await self.client.hgetall(key)
            if not fields:
                continue
            metadata = json.loads(_decode(fields.get(b"metadata", b"{}")))
            if not matches_filter(metadata, filter):
                continue
            vectors.append(
                Vector(
                    id=_decode(fields.get(b"vector_id", b"")),
                    values=unpack_vector(fields.get(VECTOR_FIELD.encode(), b"")),
                    metadata=metadata,
                )
            )
        return vectors

    async def delete(self, collection: str, ids: Optional[list[str]] = None) -> None:
        try:
            if ids is None:
                keys = await self._keys(collection)
            else:
                keys = [self._key(collection, vector_id) for vector_id in ids]
            if keys:
                await self.client.delete(*keys)
        except RedisError as e:
            raise VectorStoreError(f"Failed to delete from {collection}: {e}", collection=collection) from e

    async def list_collections(self) -> list[str]:
        names = await self.client.execute_command("FT._LIST")
        return sorted(_decode(name) for name in names)

    async def delete_collection(self, name: str) -> None:
        try:
            index = await self._index(name)
            await index.delete(drop=True)
            self._indexes.pop(name, None)
        except RedisError as e:
            raise VectorStoreError(f"Failed to delete collection {name}: {e}", collection=name) from e

    async def is_connected(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            self.logger.warning("vector_store_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._indexes.clear()
