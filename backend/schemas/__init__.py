"""
BidRadar Pydantic Schemas
Request/Response models for API endpoints.
"""
from backend.schemas.matching import (
    AlertActionRequest,
    AlertListResponse,
    CacheClearResponse,
    CacheStatsResponse,
    CycleResponse,
    MatchingConfigUpdate,
    MatchingStatusResponse,
    StartMatchingRequest,
)

__all__ = [
    "AlertActionRequest",
    "AlertListResponse",
    "CacheClearResponse",
    "CacheStatsResponse",
    "CycleResponse",
    "MatchingConfigUpdate",
    "MatchingStatusResponse",
    "StartMatchingRequest",
]
