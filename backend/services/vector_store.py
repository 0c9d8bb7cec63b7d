"""
Opportunity corpus and company profile vectors.

Wraps the vector port with the two collections the matching engine reads:
opportunities (one vector per notice) and company profiles (one vector per
profile, keyed ``profile_<id>``).
"""
import time
from typing import Optional

import structlog

from agents.matching.models import CompanyProfile, Opportunity
from backend.adapters.ports import VectorStore
from backend.adapters.types import Vector, VectorSearchResult
from backend.core.exceptions import ConfigurationError
from backend.services.embeddings import EmbeddingGateway

logger = structlog.get_logger().bind(service="corpus")

OPPORTUNITY_SOURCE = "sam-gov"


def profile_vector_id(profile_id: str) -> str:
    return f"profile_{profile_id}"


class OpportunityCorpus:
    """Reads and writes opportunity and profile vectors."""

    def __init__(
        self,
        vector_store: VectorStore,
        embeddings: EmbeddingGateway,
        opportunity_collection: str = "sam_opportunities",
        profile_collection: str = "company_profiles",
    ):
        self.vector_store = vector_store
        self.embeddings = embeddings
        self.opportunity_collection = opportunity_collection
        self.profile_collection = profile_collection

    def _opportunity_vector(self, opportunity: Opportunity, values: list[float]) -> Vector:
        metadata = opportunity.to_metadata()
        metadata["source"] = OPPORTUNITY_SOURCE
        metadata["timestamp"] = int(time.time() * 1000)
        return Vector(id=opportunity.id, values=values, metadata=metadata)

    async def add_opportunity(self, opportunity: Opportunity) -> bool:
        """Embed and upsert one opportunity. Backend failures are logged, not raised."""
        return await self.add_opportunities([opportunity]) == 1

    async def add_opportunities(self, opportunities: list[Opportunity]) -> int:
        """Embed and upsert a batch. Returns the number stored."""
        if not opportunities:
            return 0
        try:
            values = await self.embeddings.get_embeddings([o.to_embedding_text() for o in opportunities])
            vectors = [self._opportunity_vector(o, v) for o, v in zip(opportunities, values)]
            await self.vector_store.upsert(self.opportunity_collection, vectors)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(
                "opportunity_upsert_failed",
                collection=self.opportunity_collection,
                count=len(opportunities),
                error=str(e),
            )
            return 0

        logger.info("opportunities_added", collection=self.opportunity_collection, count=len(vectors))
        return len(vectors)

    async def list_opportunities(self, active_only: bool = False) -> list[Opportunity]:
        """The full current corpus. Raises ConfigurationError when no vector store is configured."""
        vectors = await self.vector_store.list_vectors(self.opportunity_collection)
        opportunities = []
        for vector in vectors:
            try:
                opportunity = Opportunity.from_metadata(vector.id, vector.metadata)
            except ValueError as e:
                logger.warning("opportunity_metadata_invalid", opportunity_id=vector.id, error=str(e))
                continue
            if active_only and not opportunity.active:
                continue
            opportunities.append(opportunity)
        return opportunities

    async def search_similar(self, text: str, limit: int = 10, raise_errors: bool = False) -> list[VectorSearchResult]:
        query_vector = await self.embeddings.get_embedding(text)
        return await self.vector_store.query(
            self.opportunity_collection, query_vector, top_k=limit, raise_errors=raise_errors
        )

    async def remove_opportunities(self, opportunity_ids: Optional[list[str]] = None) -> None:
        await self.vector_store.delete(self.opportunity_collection, ids=opportunity_ids)

    # =========================================================================
    # Profiles
    # =========================================================================

    async def add_company_profile(self, profile: CompanyProfile) -> bool:
        try:
            values = await self.embeddings.get_embedding(profile.to_embedding_text())
            vector = Vector(
                id=profile_vector_id(profile.id),
                values=values,
                metadata={
                    "type": "company_profile",
                    "profileId": profile.id,
                    "entityName": profile.entity_name,
                    "naicsCodes": profile.naics_codes,
                    "businessTypes": profile.business_types,
                    "state": profile.contact_info.state or "",
                    "timestamp": int(time.time() * 1000),
                },
            )
            await self.vector_store.upsert(self.profile_collection, [vector])
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("profile_upsert_failed", profile_id=profile.id, error=str(e))
            return False

        logger.info("profile_added", profile_id=profile.id)
        return True

    async def get_profile_vector(self, profile_id: str) -> Optional[list[float]]:
        vectors = await self.vector_store.list_vectors(self.profile_collection, filter={"profileId": profile_id})
        for vector in vectors:
            if vector.id == profile_vector_id(profile_id):
                return vector.values
        return None
