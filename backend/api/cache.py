"""Cache administration API endpoints."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from backend.adapters.factory import Fallback
from backend.api.deps import get_context
from backend.schemas.matching import BackendResolutionResponse, CacheClearResponse, CacheStatsResponse
from backend.services.context import ServiceContext

router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(context: ServiceContext = Depends(get_context)) -> CacheStatsResponse:
    """Backend stats, response-cache counters and how the backend was chosen."""
    stats = await context.cache.get_stats()
    response_stats = await context.response_cache.get_stats()

    backend = None
    resolution = context.selector.cache_resolution
    if resolution is not None:
        backend = BackendResolutionResponse(
            kind=resolution.kind,
            provider=resolution.provider,
            requested=resolution.requested if isinstance(resolution, Fallback) else None,
            fallback_reason=resolution.reason if isinstance(resolution, Fallback) else None,
        )

    return CacheStatsResponse(
        **stats.model_dump(),
        **response_stats.model_dump(),
        backend=backend,
    )


@router.delete("", response_model=CacheClearResponse)
async def clear_cache(
    prefix: Optional[str] = Query(default=None, description="Only clear keys under this prefix"),
    context: ServiceContext = Depends(get_context),
) -> CacheClearResponse:
    """Clear one prefix, or every response-cache entry when no prefix is given."""
    if prefix:
        await context.cache.clear_by_prefix(prefix)
    else:
        await context.response_cache.clear()
    return CacheClearResponse(prefix=prefix, cleared_at=datetime.now(timezone.utc))
