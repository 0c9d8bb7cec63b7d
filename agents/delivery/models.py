"""
BidRadar Alert Delivery Models
Pydantic models for match alerts and notification payloads.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from agents.matching.models import MatchRelevanceFactors, Opportunity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertType(str, Enum):
    """Why an alert was raised."""

    HIGH_MATCH = "high_match"  # score >= 90
    SET_ASIDE_MATCH = "set_aside_match"
    DEADLINE_APPROACHING = "deadline_approaching"  # urgency >= 0.7
    NEW_OPPORTUNITY = "new_opportunity"


class AlertPriority(str, Enum):
    """Priority levels for alert routing."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchAlert(BaseModel):
    """
    A match between one opportunity and one profile, raised by the matcher.

    Only ``read`` and ``action_taken`` change after creation.
    """

    id: str = Field(default_factory=lambda: f"alert_{uuid4().hex}")
    profile_id: str
    opportunity_id: str
    opportunity: Opportunity = Field(..., description="Snapshot of the opportunity when matched")
    match_score: float = Field(..., ge=0.0, le=100.0)
    relevance_factors: MatchRelevanceFactors
    alert_type: AlertType
    priority: AlertPriority
    created_at: datetime = Field(default_factory=_utcnow)
    read: bool = False
    action_taken: Optional[str] = None


class NotificationPayload(BaseModel):
    """User-facing notification emitted for an alert."""

    title: str
    body: str
    alert_id: Optional[str] = None
    profile_id: Optional[str] = None
    priority: Optional[AlertPriority] = None
