"""
Cache and vector-store contracts.

Any backend that implements these methods satisfies the protocol; no
explicit inheritance is required. The shared helpers here (key building,
dimension normalization) are applied at the port boundary so every backend
sees the same keys and vector shapes.
"""
import re
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, Field

DEFAULT_DIMENSION = 1536

_KEY_UNSAFE = re.compile(r"[^a-zA-Z0-9:_-]")


# =============================================================================
# Models
# =============================================================================


class CacheEntry(BaseModel):
    """Envelope stored around every cached value."""

    data: Any = None
    timestamp: int = Field(..., description="Storage time in epoch milliseconds")
    ttl: int = Field(..., description="Time-to-live in seconds")

    def is_expired(self, now: float) -> bool:
        """True once more than ``ttl`` seconds have passed since storage."""
        return now - self.timestamp / 1000.0 > self.ttl


class CacheStats(BaseModel):
    total_keys: int = 0
    memory_usage: str = "0KB"
    connected: bool = False


class Vector(BaseModel):
    id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorSearchResult(BaseModel):
    id: str
    score: float = Field(..., description="Cosine similarity, 1.0 = identical direction")
    metadata: dict[str, Any] = Field(default_factory=dict)
    values: Optional[list[float]] = None


# =============================================================================
# Helpers
# =============================================================================


def build_key(key: str, prefix: Optional[str] = None) -> str:
    """Compose ``prefix:key`` and replace characters outside [A-Za-z0-9:_-]."""
    full_key = f"{prefix}:{key}" if prefix else key
    return _KEY_UNSAFE.sub("_", full_key)


def prefix_pattern(prefix: str) -> str:
    """Glob matching every key stored under ``prefix``."""
    return f"{build_key(prefix)}:*"


def clamp_ttl(ttl: Optional[int], default_ttl: int, max_ttl: int) -> int:
    if ttl is None:
        ttl = default_ttl
    return max(1, min(int(ttl), max_ttl))


def normalize_vector(values: list[float], dimension: int) -> list[float]:
    """Zero-pad or truncate ``values`` to exactly ``dimension`` entries."""
    if len(values) == dimension:
        return list(values)
    if len(values) > dimension:
        return list(values[:dimension])
    return list(values) + [0.0] * (dimension - len(values))


def matches_filter(metadata: dict[str, Any], filter: Optional[dict[str, Any]]) -> bool:
    """Exact-match every key of ``filter`` against ``metadata``."""
    if not filter:
        return True
    return all(metadata.get(key) == value for key, value in filter.items())


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class CacheAdapter(Protocol):
    """Time-boxed key-value store."""

    async def get(self, key: str, prefix: Optional[str] = None) -> Any:
        """Return the cached value, or None when missing or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, prefix: Optional[str] = None) -> None:
        """Store ``value``. Never raises."""
        ...

    async def delete(self, key: str, prefix: Optional[str] = None) -> None:
        ...

    async def clear_by_prefix(self, prefix: str) -> None:
        ...

    async def purge_expired(self, prefixes: Optional[Sequence[str]] = None) -> int:
        """Remove expired entries under ``prefixes`` and return how many were dropped."""
        ...

    async def count(self, prefix: Optional[str] = None) -> int:
        ...

    async def get_stats(self) -> CacheStats:
        ...

    async def is_connected(self) -> bool:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class VectorStoreAdapter(Protocol):
    """Named collections of fixed-dimension vectors with cosine search."""

    provider: str

    async def create_collection(self, name: str, dimension: int = DEFAULT_DIMENSION) -> None:
        ...

    async def upsert(
        self,
        collection: str,
        vectors: list[Vector],
        extra_metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        ...

    async def query(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorSearchResult]:
        """Results ordered by descending similarity."""
        ...

    async def list_vectors(
        self,
        collection: str,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[Vector]:
        ...

    async def delete(self, collection: str, ids: Optional[list[str]] = None) -> None:
        """Delete ``ids``, or everything in the collection when ids is None."""
        ...

    async def list_collections(self) -> list[str]:
        ...

    async def delete_collection(self, name: str) -> None:
        ...

    async def is_connected(self) -> bool:
        ...

    async def close(self) -> None:
        ...
