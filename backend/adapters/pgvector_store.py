"""
PostgreSQL + pgvector vector store.

All collections share one ``vector_items`` table keyed by (collection, id).
Similarity uses the cosine distance operator ``<=>`` and is reported as
``1 - distance``.
"""
import json
from typing import Any, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from backend.adapters.types import DEFAULT_DIMENSION, Vector, VectorSearchResult
from backend.core.exceptions import ConfigurationError, VectorStoreError


def _to_pgvector(values: list[float]) -> str:
    return "[" + ",".join(map(str, values)) + "]"


def _load_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


class PgVectorStore:
    """Vector store on PostgreSQL with the pgvector extension."""

    provider = "pgvector"

    def __init__(
        self,
        database_url: Optional[str] = None,
        dimension: int = DEFAULT_DIMENSION,
        engine: Optional[AsyncEngine] = None,
    ):
        if engine is None and not database_url:
            raise ConfigurationError("pgvector store requires a database URL", provider=self.provider)
        self.database_url = database_url
        self.dimension = dimension
        self._engine = engine
        self._schema_ready = False
        self.logger = structlog.get_logger().bind(component="vector_store", provider=self.provider)

    @property
    def engine(self) -> AsyncEngine:
        """Lazy-loaded async engine."""
        if self._engine is None:
            self._engine = create_async_engine(
                self.database_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        return self._engine

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.execute(text("""
                CREATE TABLE IF NOT EXISTS vector_collections (
                    name TEXT PRIMARY KEY,
                    dimension INTEGER NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
            """))
            await conn.execute(text(f"""
                CREATE TABLE IF NOT EXISTS vector_items (
                    collection TEXT NOT NULL REFERENCES vector_collections(name) ON DELETE CASCADE,
                    id TEXT NOT NULL,
                    embedding vector({int(self.dimension)}) NOT NULL,
                    metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    PRIMARY KEY (collection, id)
                )
            """))
            await conn.execute(text("""
                CREATE INDEX IF NOT EXISTS ix_vector_items_embedding
                ON vector_items USING hnsw (embedding vector_cosine_ops)
            """))
        self._schema_ready = True

    async def create_collection(self, name: str, dimension: int = DEFAULT_DIMENSION) -> None:
        try:
            await self._ensure_schema()
            async with self.engine.begin() as conn:
                await conn.execute(
                    text("""
                        INSERT INTO vector_collections (name, dimension)
                        VALUES (:name, :dimension)
                        ON CONFLICT (name) DO NOTHING
                    """),
                    {"name": name, "dimension": dimension},
                )
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Failed to create collection {name}: {e}", collection=name) from e

    async def upsert(
        self,
        collection: str,
        vectors: list[Vector],
        extra_metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if not vectors:
            return
        await self.create_collection(collection, self.dimension)

        rows = [
            {
                "collection": collection,
                "id": vector.id,
                "embedding": _to_pgvector(vector.values),
                "metadata": json.dumps({**vector.metadata, **(extra_metadata or {})}),
            }
            for vector in vectors
        ]
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    text("""
                        INSERT INTO vector_items (collection, id, embedding, metadata)
                        VALUES (:collection, :id, CAST(:embedding AS vector), CAST(:metadata AS jsonb))
                        ON CONFLICT (collection, id) DO UPDATE
                        SET embedding = EXCLUDED.embedding,
                            metadata = EXCLUDED.metadata,
                            updated_at = now()
                    """),
                    rows,
                )
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Failed to upsert into {collection}: {e}", collection=collection) from e

        self.logger.debug("vectors_upserted", collection=collection, count=len(rows))

    async def query(
        self,
        collection: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorSearchResult]:
        await self._ensure_schema()
        query = text("""
            SELECT
                id,
                metadata,
                embedding::text AS embedding,
                1 - (embedding <=> CAST(:query_vector AS vector)) AS score
            FROM vector_items
            WHERE collection = :collection
              AND metadata @> CAST(:filter AS jsonb)
            ORDER BY embedding <=> CAST(:query_vector AS vector)
            LIMIT :top_k
        """)
        async with self.engine.connect() as conn:
            result = await conn.execute(
                query,
                {
                    "collection": collection,
                    "query_vector": _to_pgvector(query_vector),
                    "filter": json.dumps(filter or {}),
                    "top_k": top_k,
                },
            )
            rows = result.fetchall()

        return [
            VectorSearchResult(
                id=row.id,
                score=float(row.score),
                metadata=_load_json(row.metadata, {}),
                values=_load_json(row.embedding, None),
            )
            for row in rows
        ]

    async def list_vectors(self, collection: str, filter: Optional[dict[str, Any]] = None) -> list[Vector]:
        await self._ensure_schema()
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text("""
                    SELECT id, metadata, embedding::text AS embedding
                    FROM vector_items
                    WHERE collection = :collection
                      AND metadata @> CAST(:filter AS jsonb)
                    ORDER BY updated_at DESC
                """),
                {"collection": collection, "filter": json.dumps(filter or {})},
            )
            rows = result.fetchall()

        return [
            Vector(
                id=row.id,
                values=_load_json(row.embedding, []),
                metadata=_load_json(row.metadata, {}),
            )
            for row in rows
        ]

    async def delete(self, collection: str, ids: Optional[list[str]] = None) -> None:
        try:
            await self._ensure_schema()
            async with self.engine.begin() as conn:
                if ids is None:
                    await conn.execute(
                        text("DELETE FROM vector_items WHERE collection = :collection"),
                        {"collection": collection},
                    )
                elif ids:
                    await conn.execute(
                        text("DELETE FROM vector_items WHERE collection = :collection AND id = ANY(:ids)"),
                        {"collection": collection, "ids": list(ids)},
                    )
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Failed to delete from {collection}: {e}", collection=collection) from e

    async def list_collections(self) -> list[str]:
        await self._ensure_schema()
        async with self.engine.connect() as conn:
            result = await conn.execute(text("SELECT name FROM vector_collections ORDER BY name"))
            return [row.name for row in result.fetchall()]

    async def delete_collection(self, name: str) -> None:
        try:
            await self._ensure_schema()
            async with self.engine.begin() as conn:
                await conn.execute(text("DELETE FROM vector_collections WHERE name = :name"), {"name": name})
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Failed to delete collection {name}: {e}", collection=name) from e

    async def is_connected(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.logger.warning("vector_store_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
