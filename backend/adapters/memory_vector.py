"""
In-process vector store using numpy cosine similarity.

Intended for local development and tests. It is only used when selected
explicitly and is never a fallback for a configured backend.
"""
from typing import Any, Optional

import numpy as np
import structlog

from backend.adapters.types import (
    DEFAULT_DIMENSION,
    Vector,
    VectorSearchResult,
    matches_filter,
)


class _Collection:
    def __init__(self, dimension: int):
        self.dimension = dimension
        self.vectors: dict[str, Vector] = {}
        self.index: dict[str, np.ndarray] = {}  # id -> unit vector


class MemoryVectorStore:
    """Vector store keeping every collection in a dict."""

    provider = "memory"

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}
        self.logger = structlog.get_logger().bind(component="vector_store", provider=self.provider)

    def _get_or_create(self, name: str, dimension: int = DEFAULT_DIMENSION) -> _Collection:
        if name not in self._collections:
            self._collections[name] = _Collection(dimension)
        return self._collections[name]

    async def create_collection(self, name: str, dimension: int = DEFAULT_DIMENSION) -> None:
        self._get_or_create(name, dimension)

    async def upsert(
        self,
        collection: str,
        vectors: list[Vector],
        extra_metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        target = self._get_or_create(collection)
        for vector in vectors:
            metadata = {**vector.metadata, **(extra_metadata or {})}
            stored = Vector(id=vector.id, values=list(vector.values), metadata=metadata)
            target.vectors[vector.id] = stored

            array = np.asarray(stored.values, dtype=float)
            norm = np.linalg.norm(array)
            target.index[vector.id] = array / norm if norm > 0 else array

    async def query(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorSearchResult]:
        target = self._collections.get(collection)
        if target is None or not target.index:
            return []

        query = np.asarray(query_vector, dtype=float)
        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        query = query / norm

        similarities = []
        for vector_id, unit in target.index.items():
            stored = target.vectors[vector_id]
            if not matches_filter(stored.metadata, filter):
                continue
            similarities.append((vector_id, float(np.dot(query, unit))))

        similarities.sort(key=lambda item: item[1], reverse=True)

        return [
            VectorSearchResult(
                id=vector_id,
                score=score,
                metadata=dict(target.vectors[vector_id].metadata),
                values=list(target.vectors[vector_id].values),
            )
            for vector_id, score in similarities[:top_k]
        ]

    async def list_vectors(self, collection: str, filter: Optional[dict[str, Any]] = None) -> list[Vector]:
        target = self._collections.get(collection)
        if target is None:
            return []
        return [
            vector.model_copy(deep=True)
            for vector in target.vectors.values()
            if matches_filter(vector.metadata, filter)
        ]

    async def delete(self, collection: str, ids: Optional[list[str]] = None) -> None:
        target = self._collections.get(collection)
        if target is None:
            return
        if ids is None:
            target.vectors.clear()
            target.index.clear()
            return
        for vector_id in ids:
            target.vectors.pop(vector_id, None)
            target.index.pop(vector_id, None)

    async def list_collections(self) -> list[str]:
        return list(self._collections)

    async def delete_collection(self, name: str) -> None:
        self._collections.pop(name, None)

    async def is_connected(self) -> bool:
        return True

    async def close(self) -> None:
        return None
