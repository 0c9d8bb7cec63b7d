"""
Profile-aware opportunity search.

Embeds the query, pulls the nearest opportunities from the corpus and,
when a profile is given, re-ranks them with the relevance scorer using the
blended vector/factor score. Result sets are memoized in the response
cache.
"""
from datetime import datetime
from typing import Optional

import structlog

from agents.matching.models import CompanyProfile, MatchRelevanceFactors, Opportunity, ScoredOpportunity
from agents.matching.scorer import RelevanceScorer
from backend.core.exceptions import VectorStoreError
from backend.services.cache import ResponseCache
from backend.services.vector_store import OpportunityCorpus

logger = structlog.get_logger().bind(service="opportunity_search")


class OpportunitySearch:
    """Semantic search over the opportunity corpus."""

    CANDIDATE_MULTIPLIER = 2

    def __init__(self, corpus: OpportunityCorpus, scorer: RelevanceScorer, cache: ResponseCache):
        self.corpus = corpus
        self.scorer = scorer
        self.cache = cache

    async def search(
        self,
        query: str,
        profile: Optional[CompanyProfile] = None,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> list[ScoredOpportunity]:
        profile_id = profile.id if profile else None

        cached = await self.cache.get_vector_search(profile_id, query, limit)
        if cached is not None:
            return [ScoredOpportunity.model_validate(item) for item in cached]

        try:
            results = await self._search(query, profile, limit, now)
        except VectorStoreError as e:
            # Outages are not memoized.
            logger.warning("opportunity_search_degraded", profile_id=profile_id, error=str(e))
            return []

        await self.cache.set_vector_search(
            profile_id, query, limit, [result.model_dump(mode="json") for result in results]
        )
        return results

    async def _search(
        self,
        query: str,
        profile: Optional[CompanyProfile],
        limit: int,
        now: Optional[datetime],
    ) -> list[ScoredOpportunity]:
        hits = await self.corpus.search_similar(
            query, limit=limit * self.CANDIDATE_MULTIPLIER, raise_errors=True
        )

        results = []
        for hit in hits:
            opportunity = Opportunity.from_metadata(hit.id, hit.metadata)
            vector_score = max(0.0, min(1.0, hit.score)) * 100
            if profile is None:
                results.append(
                    ScoredOpportunity(
                        opportunity=opportunity,
                        factors=MatchRelevanceFactors(),
                        score=vector_score,
                        vector_score=vector_score,
                    )
                )
            else:
                results.append(
                    self.scorer.score_opportunity(opportunity, profile, vector_score=vector_score, now=now)
                )

        results.sort(key=lambda r: r.score, reverse=True)
        logger.info(
            "opportunity_search_complete",
            profile_id=profile.id if profile else None,
            candidates=len(hits),
            returned=min(limit, len(results)),
        )
        return results[:limit]
