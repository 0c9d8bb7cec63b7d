"""
BidRadar Health Check Endpoints
Reports whether the cache and vector backends are usable.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.api.deps import get_context
from backend.services.context import ServiceContext

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    """Health status values for components and overall system."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for an individual component."""

    status: HealthStatus
    provider: Optional[str] = None
    latency_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    version: str
    timestamp: datetime
    cache: ComponentHealth
    vector_store: ComponentHealth


@router.get("/health", response_model=HealthResponse)
async def health(context: ServiceContext = Depends(get_context)) -> HealthResponse:
    """
    Cache problems only degrade the service (it falls back to memory);
    an unusable vector store makes it unhealthy.
    """
    start = time.perf_counter()
    cache_ok = await context.cache.is_connected()
    cache_latency = (time.perf_counter() - start) * 1000
    cache_resolution = context.selector.cache_resolution

    start = time.perf_counter()
    vector_ok = await context.vector_store.is_connected()
    vector_latency = (time.perf_counter() - start) * 1000
    vector_resolution = context.selector.vector_resolution

    cache_status = HealthStatus.HEALTHY if cache_ok else HealthStatus.DEGRADED
    vector_status = HealthStatus.HEALTHY if vector_ok else HealthStatus.UNHEALTHY

    if vector_status == HealthStatus.UNHEALTHY:
        overall = HealthStatus.UNHEALTHY
    elif cache_status != HealthStatus.HEALTHY:
        overall = HealthStatus.DEGRADED
    else:
        overall = HealthStatus.HEALTHY

    return HealthResponse(
        status=overall,
        version=context.settings.app_version,
        timestamp=datetime.now(timezone.utc),
        cache=ComponentHealth(
            status=cache_status,
            provider=cache_resolution.provider if cache_resolution else None,
            latency_ms=round(cache_latency, 2),
        ),
        vector_store=ComponentHealth(
            status=vector_status,
            provider=vector_resolution.provider if vector_resolution else None,
            latency_ms=round(vector_latency, 2),
        ),
    )
