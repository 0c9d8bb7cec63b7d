"""Matching and cache API schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from agents.delivery.models import MatchAlert
from agents.matching.models import CompanyProfile


class StartMatchingRequest(BaseModel):
    profile: CompanyProfile


class MatchingStatusResponse(BaseModel):
    profile_id: str
    running: bool
    changed: bool = Field(..., description="False when the request was a no-op")


class CycleResponse(BaseModel):
    profile_id: str
    new_alerts: list[MatchAlert]


class AlertListResponse(BaseModel):
    profile_id: str
    alerts: list[MatchAlert]
    unread: int


class AlertActionRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=200, description="e.g. 'saved', 'dismissed', 'applied'")


class MatchingConfigUpdate(BaseModel):
    check_interval: Optional[float] = Field(default=None, gt=0)
    min_match_score: Optional[float] = Field(default=None, ge=0, le=100)
    max_alerts_per_profile: Optional[int] = Field(default=None, ge=1)
    enable_notifications: Optional[bool] = None
    auto_refresh: Optional[bool] = None


class BackendResolutionResponse(BaseModel):
    kind: str
    provider: str
    requested: Optional[str] = None
    fallback_reason: Optional[str] = None


class CacheStatsResponse(BaseModel):
    total_keys: int
    memory_usage: str
    connected: bool
    chat_entries: int
    vector_entries: int
    embedding_entries: int
    hits: int
    misses: int
    backend: Optional[BackendResolutionResponse] = None


class CacheClearResponse(BaseModel):
    prefix: Optional[str] = None
    cleared_at: datetime
