"""
Matching Agent Pydantic Models
Data models for the opportunity matching engine.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

OPPORTUNITY_METADATA_KEYS = {
    "type",
    "title",
    "synopsis",
    "naicsCode",
    "state",
    "city",
    "setAside",
    "responseDeadline",
    "active",
    "sourceLink",
    "classificationCode",
    "noticeType",
    "opportunityType",
    "uiLink",
}


def parse_deadline(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 deadline; naive values are taken as UTC. Invalid input yields None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ContactInfo(BaseModel):
    state: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None


class CompanyProfile(BaseModel):
    """
    Company profile used as the requester side of a match.

    Matching reads NAICS codes, business types, capabilities and the
    contact state; the remaining fields feed the profile embedding text.
    """

    id: str = Field(..., description="Profile identifier")
    entity_name: str = Field(default="", description="Registered company name")
    description: Optional[str] = Field(default=None, description="Free-text company description")
    naics_codes: list[str] = Field(default_factory=list, description="Declared NAICS codes")
    business_types: list[str] = Field(
        default_factory=list,
        description="Business categories, e.g. 'Small Business', 'Veteran-Owned'",
    )
    capabilities: list[str] = Field(default_factory=list, description="Capability statements")
    past_performance: list[str] = Field(default_factory=list, description="Past performance summaries")
    certifications: list[str] = Field(default_factory=list, description="Held certifications")
    contact_info: ContactInfo = Field(default_factory=ContactInfo)

    def to_embedding_text(self) -> str:
        parts = [
            self.entity_name,
            self.description or "",
            f"NAICS: {', '.join(self.naics_codes)}" if self.naics_codes else "",
            f"Business types: {', '.join(self.business_types)}" if self.business_types else "",
            f"Capabilities: {', '.join(self.capabilities)}" if self.capabilities else "",
            f"Past performance: {', '.join(self.past_performance)}" if self.past_performance else "",
            f"Certifications: {', '.join(self.certifications)}" if self.certifications else "",
        ]
        return " ".join(part for part in parts if part).strip()


class Opportunity(BaseModel):
    """
    A procurement opportunity as stored in the corpus.

    Vector metadata uses camelCase keys; ``from_metadata`` and
    ``to_metadata`` translate between the two shapes. Unknown metadata keys
    are kept in ``extra``.
    """

    id: str = Field(..., description="Notice identifier")
    title: str = Field(default="", description="Opportunity title")
    synopsis: str = Field(default="", description="Opportunity description")
    type: Optional[str] = Field(default=None, description="Notice type, e.g. 'Solicitation'")
    naics_code: Optional[str] = None
    classification_code: Optional[str] = None
    set_aside: Optional[str] = Field(default=None, description="Set-aside description")
    state: Optional[str] = Field(default=None, description="Place-of-performance state")
    city: Optional[str] = None
    response_deadline: Optional[datetime] = None
    active: bool = True
    source_link: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _coerce_deadline(cls, data: Any) -> Any:
        if isinstance(data, dict) and "response_deadline" in data:
            data = {**data, "response_deadline": parse_deadline(data["response_deadline"])}
        return data

    @classmethod
    def from_metadata(cls, opportunity_id: str, metadata: dict[str, Any]) -> "Opportunity":
        active = metadata.get("active", True)
        if isinstance(active, str):
            active = active.lower() not in ("false", "no", "0")
        return cls(
            id=opportunity_id,
            title=metadata.get("title") or "",
            synopsis=metadata.get("synopsis") or "",
            type=metadata.get("noticeType") or metadata.get("opportunityType"),
            naics_code=metadata.get("naicsCode") or None,
            classification_code=metadata.get("classificationCode") or None,
            set_aside=metadata.get("setAside") or None,
            state=metadata.get("state") or None,
            city=metadata.get("city") or None,
            response_deadline=metadata.get("responseDeadline"),
            active=bool(active),
            source_link=metadata.get("sourceLink") or metadata.get("uiLink") or None,
            extra={k: v for k, v in metadata.items() if k not in OPPORTUNITY_METADATA_KEYS},
        )

    def to_metadata(self) -> dict[str, Any]:
        metadata = {
            **self.extra,
            "type": "opportunity",
            "title": self.title,
            "synopsis": self.synopsis,
            "naicsCode": self.naics_code or "",
            "classificationCode": self.classification_code or "",
            "state": self.state or "",
            "city": self.city or "",
            "setAside": self.set_aside or "",
            "responseDeadline": self.response_deadline.isoformat() if self.response_deadline else "",
            "active": self.active,
            "sourceLink": self.source_link or "",
        }
        if self.type:
            metadata["noticeType"] = self.type
        return metadata

    def to_embedding_text(self) -> str:
        parts = [
            self.title,
            self.synopsis,
            self.type or "",
            self.set_aside or "",
            self.naics_code or "",
            self.classification_code or "",
            self.city or "",
            self.state or "",
        ]
        return " ".join(part for part in parts if part).strip()


class MatchRelevanceFactors(BaseModel):
    """Per-pair relevance signals. Recomputed every cycle, never persisted."""

    naics_match: bool = False
    set_aside_match: bool = False
    location_match: bool = False
    capability_match: bool = False
    recency_score: float = Field(default=0.0, ge=0.0, le=1.0)
    value_score: float = Field(default=0.0, ge=0.0, le=1.0)
    deadline_urgency: float = Field(default=0.0, ge=0.0, le=1.0)


class ScoringWeights(BaseModel):
    """Factor weights for the relevance score. Must sum to 1.0."""

    naics_match: float = 0.25
    set_aside_match: float = 0.20
    location_match: float = 0.15
    capability_match: float = 0.20
    recency_score: float = 0.10
    value_score: float = 0.10

    @model_validator(mode="after")
    def _check_total(self) -> "ScoringWeights":
        total = (
            self.naics_match
            + self.set_aside_match
            + self.location_match
            + self.capability_match
            + self.recency_score
            + self.value_score
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"scoring weights must sum to 1.0, got {total:.4f}")
        return self


class ScoredOpportunity(BaseModel):
    """An opportunity with its relevance factors and final 0-100 score."""

    opportunity: Opportunity
    factors: MatchRelevanceFactors
    score: float = Field(..., ge=0.0, le=100.0)
    vector_score: Optional[float] = Field(
        default=None,
        description="Upstream vector similarity on a 0-100 scale, when blended",
    )
