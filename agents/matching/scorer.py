"""
Relevance scoring between an opportunity and a company profile.

The score is a weighted sum of four boolean signals (NAICS, set-aside,
location, capability) and two continuous ones (deadline recency, contract
value keywords), scaled to 0-100. Deadline urgency is computed alongside
for alert classification but carries no weight.
"""
from datetime import datetime, timezone
from typing import Optional

from .models import (
    CompanyProfile,
    MatchRelevanceFactors,
    Opportunity,
    ScoredOpportunity,
    ScoringWeights,
)

HIGH_VALUE_KEYWORDS = (
    "development",
    "implementation",
    "system",
    "software",
    "technology",
    "consulting",
    "analysis",
    "research",
    "design",
    "engineering",
    "infrastructure",
    "platform",
    "solution",
    "service",
    "support",
)

LOW_VALUE_KEYWORDS = (
    "maintenance",
    "cleaning",
    "supply",
    "equipment",
    "material",
    "simple",
    "basic",
    "routine",
    "standard",
)


def _overlaps(a: Optional[str], b: Optional[str]) -> bool:
    """Bidirectional substring match; empty values never match."""
    # An empty code would otherwise be a substring of every code.
    if not a or not b:
        return False
    return a in b or b in a


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def days_until(deadline: Optional[datetime], now: datetime) -> Optional[float]:
    if deadline is None:
        return None
    return (deadline - now).total_seconds() / 86400


class RelevanceScorer:
    """
    Deterministic relevance scorer.

    Given the same opportunity, profile and ``now``, ``score`` always
    returns the same factors and a score in [0, 100].
    """

    NO_DEADLINE_RECENCY = 0.5
    RECENCY_WINDOW_DAYS = 30.0
    BASE_VALUE_SCORE = 0.5
    HIGH_VALUE_BONUS = 0.1
    LOW_VALUE_PENALTY = 0.05
    MAX_SCORE = 100.0

    VECTOR_WEIGHT = 0.3
    FACTOR_WEIGHT = 0.7

    def __init__(
        self,
        weights: Optional[ScoringWeights] = None,
        vector_weight: float = VECTOR_WEIGHT,
        factor_weight: float = FACTOR_WEIGHT,
    ):
        self.weights = weights or ScoringWeights()
        self.vector_weight = vector_weight
        self.factor_weight = factor_weight

    # =========================================================================
    # Factors
    # =========================================================================

    @staticmethod
    def naics_match(opportunity: Opportunity, profile: CompanyProfile) -> bool:
        return any(_overlaps(code, opportunity.naics_code) for code in profile.naics_codes)

    @staticmethod
    def set_aside_match(opportunity: Opportunity, profile: CompanyProfile) -> bool:
        set_aside = (opportunity.set_aside or "").lower()
        return any(_overlaps(business_type.lower(), set_aside) for business_type in profile.business_types)

    @staticmethod
    def location_match(opportunity: Opportunity, profile: CompanyProfile) -> bool:
        state = profile.contact_info.state
        return bool(state) and state == opportunity.state

    @staticmethod
    def capability_match(opportunity: Opportunity, profile: CompanyProfile) -> bool:
        title = opportunity.title.lower()
        synopsis = opportunity.synopsis.lower()
        for capability in profile.capabilities:
            needle = capability.lower().strip()
            if needle and (needle in title or needle in synopsis):
                return True
        return False

    @classmethod
    def recency_score(cls, deadline: Optional[datetime], now: datetime) -> float:
        days = days_until(deadline, now)
        if days is None:
            return cls.NO_DEADLINE_RECENCY
        return _clamp(days / cls.RECENCY_WINDOW_DAYS)

    @classmethod
    def value_score(cls, opportunity: Opportunity) -> float:
        text = f"{opportunity.title} {opportunity.synopsis}".lower()
        score = cls.BASE_VALUE_SCORE
        score += cls.HIGH_VALUE_BONUS * sum(1 for keyword in HIGH_VALUE_KEYWORDS if keyword in text)
        score -= cls.LOW_VALUE_PENALTY * sum(1 for keyword in LOW_VALUE_KEYWORDS if keyword in text)
        return _clamp(score)

    @staticmethod
    def deadline_urgency(deadline: Optional[datetime], now: datetime) -> float:
        days = days_until(deadline, now)
        if days is None:
            return 0.0
        if days <= 0:
            return 1.0
        if days <= 7:
            return 0.9
        if days <= 14:
            return 0.7
        if days <= 30:
            return 0.5
        return 0.3

    def calculate_factors(
        self,
        opportunity: Opportunity,
        profile: CompanyProfile,
        now: Optional[datetime] = None,
    ) -> MatchRelevanceFactors:
        now = now or datetime.now(timezone.utc)
        deadline = opportunity.response_deadline
        return MatchRelevanceFactors(
            naics_match=self.naics_match(opportunity, profile),
            set_aside_match=self.set_aside_match(opportunity, profile),
            location_match=self.location_match(opportunity, profile),
            capability_match=self.capability_match(opportunity, profile),
            recency_score=self.recency_score(deadline, now),
            value_score=self.value_score(opportunity),
            deadline_urgency=self.deadline_urgency(deadline, now),
        )

    # =========================================================================
    # Aggregation
    # =========================================================================

    def weighted_sum(self, factors: MatchRelevanceFactors) -> float:
        """Weighted sum of the factors in [0, 1]."""
        w = self.weights
        total = 0.0
        total += w.naics_match if factors.naics_match else 0.0
        total += w.set_aside_match if factors.set_aside_match else 0.0
        total += w.location_match if factors.location_match else 0.0
        total += w.capability_match if factors.capability_match else 0.0
        total += factors.recency_score * w.recency_score
        total += factors.value_score * w.value_score
        return total

    def calculate_score(self, factors: MatchRelevanceFactors) -> float:
        return min(self.MAX_SCORE, self.weighted_sum(factors) * 100)

    def blend_score(self, vector_score: float, weighted_sum: float) -> float:
        """
        Combine a 0-100 vector similarity with a 0-1 factor sum.

        ``vector_weight * vector_score / 100 + factor_weight * weighted_sum``,
        scaled to 0-100 and capped.
        """
        vector_normalized = _clamp(vector_score / 100)
        blended = self.vector_weight * vector_normalized + self.factor_weight * weighted_sum
        return max(0.0, min(self.MAX_SCORE, blended * 100))

    def score(
        self,
        opportunity: Opportunity,
        profile: CompanyProfile,
        now: Optional[datetime] = None,
    ) -> tuple[MatchRelevanceFactors, float]:
        factors = self.calculate_factors(opportunity, profile, now=now)
        return factors, self.calculate_score(factors)

    def score_opportunity(
        self,
        opportunity: Opportunity,
        profile: CompanyProfile,
        vector_score: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> ScoredOpportunity:
        """Score one opportunity, blending with ``vector_score`` when one is given."""
        factors = self.calculate_factors(opportunity, profile, now=now)
        if vector_score is None:
            final = self.calculate_score(factors)
        else:
            final = self.blend_score(vector_score, self.weighted_sum(factors))
        return ScoredOpportunity(
            opportunity=opportunity,
            factors=factors,
            score=final,
            vector_score=vector_score,
        )
