"""
Matching Agent Module
Opportunity-to-profile relevance scoring. The periodic matcher lives in
``agents.matching.matcher``.
"""
from .models import (
    CompanyProfile,
    ContactInfo,
    MatchRelevanceFactors,
    Opportunity,
    ScoredOpportunity,
    ScoringWeights,
)
from .scorer import HIGH_VALUE_KEYWORDS, LOW_VALUE_KEYWORDS, RelevanceScorer

__all__ = [
    # Scorer
    "RelevanceScorer",
    "HIGH_VALUE_KEYWORDS",
    "LOW_VALUE_KEYWORDS",
    # Models
    "CompanyProfile",
    "ContactInfo",
    "MatchRelevanceFactors",
    "Opportunity",
    "ScoredOpportunity",
    "ScoringWeights",
]
