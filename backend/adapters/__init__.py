"""
Storage adapters: cache and vector-store ports, their backends, and the
selector that picks between them.
"""
from backend.adapters.factory import BackendSelector, Fallback, Resolution, Resolved
from backend.adapters.ports import CacheStore, VectorStore
from backend.adapters.types import (
    CacheAdapter,
    CacheEntry,
    CacheStats,
    Vector,
    VectorSearchResult,
    VectorStoreAdapter,
)

__all__ = [
    "BackendSelector",
    "CacheAdapter",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "Fallback",
    "Resolution",
    "Resolved",
    "Vector",
    "VectorSearchResult",
    "VectorStore",
    "VectorStoreAdapter",
]
