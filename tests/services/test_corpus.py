"""
Tests for OpportunityCorpus.
"""
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from backend.core.exceptions import ConfigurationError
from backend.services.context import ServiceContext
from backend.services.vector_store import OPPORTUNITY_SOURCE, profile_vector_id
from tests.conftest import make_opportunity, make_settings


@pytest_asyncio.fixture
async def context():
    context = ServiceContext.create(make_settings())
    yield context
    await context.close()


class TestOpportunities:
    """Tests for the opportunity collection."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, context, sample_opportunity):
        assert await context.corpus.add_opportunity(sample_opportunity) is True

        opportunities = await context.corpus.list_opportunities()

        assert len(opportunities) == 1
        stored = opportunities[0]
        assert stored.id == sample_opportunity.id
        assert stored.naics_code == "541511"
        assert stored.response_deadline == sample_opportunity.response_deadline

    @pytest.mark.asyncio
    async def test_metadata_layout(self, context, sample_opportunity):
        await context.corpus.add_opportunity(sample_opportunity)

        vectors = await context.vector_store.list_vectors("sam_opportunities")

        metadata = vectors[0].metadata
        assert metadata["type"] == "opportunity"
        assert metadata["source"] == OPPORTUNITY_SOURCE
        assert metadata["setAside"] == "Small Business"
        assert isinstance(metadata["timestamp"], int)
        assert len(vectors[0].values) == 8

    @pytest.mark.asyncio
    async def test_active_only(self, context):
        await context.corpus.add_opportunities([
            make_opportunity("open"),
            make_opportunity("closed", active=False),
        ])

        all_ids = {o.id for o in await context.corpus.list_opportunities()}
        active_ids = {o.id for o in await context.corpus.list_opportunities(active_only=True)}

        assert all_ids == {"open", "closed"}
        assert active_ids == {"open"}

    @pytest.mark.asyncio
    async def test_upsert_failure_is_logged_not_raised(self, context, sample_opportunity):
        with patch.object(context.vector_store, "upsert", AsyncMock(side_effect=RuntimeError("disk full"))):
            assert await context.corpus.add_opportunity(sample_opportunity) is False

    @pytest.mark.asyncio
    async def test_empty_batch(self, context):
        assert await context.corpus.add_opportunities([]) == 0

    @pytest.mark.asyncio
    async def test_remove(self, context):
        await context.corpus.add_opportunities([make_opportunity("a"), make_opportunity("b")])

        await context.corpus.remove_opportunities(["a"])

        assert [o.id for o in await context.corpus.list_opportunities()] == ["b"]

    @pytest.mark.asyncio
    async def test_search_similar_finds_identical_text(self, context, sample_opportunity):
        await context.corpus.add_opportunities([sample_opportunity, make_opportunity("other", title="Fleet fuel")])

        results = await context.corpus.search_similar(sample_opportunity.to_embedding_text(), limit=1)

        assert [r.id for r in results] == [sample_opportunity.id]
        assert results[0].score == pytest.approx(1.0)


class TestProfiles:
    """Tests for the company profile collection."""

    @pytest.mark.asyncio
    async def test_add_and_fetch_profile_vector(self, context, sample_profile):
        assert await context.corpus.add_company_profile(sample_profile) is True

        vector = await context.corpus.get_profile_vector("acme")

        assert vector is not None
        assert len(vector) == 8

        stored = await context.vector_store.list_vectors("company_profiles")
        assert stored[0].id == profile_vector_id("acme") == "profile_acme"
        assert stored[0].metadata["profileId"] == "acme"

    @pytest.mark.asyncio
    async def test_unknown_profile(self, context):
        assert await context.corpus.get_profile_vector("nobody") is None


class TestUnconfiguredVectorStore:
    @pytest.mark.asyncio
    async def test_configuration_error_propagates(self, sample_opportunity):
        context = ServiceContext.create(make_settings(vector_provider="pgvector"))
        try:
            with pytest.raises(ConfigurationError):
                await context.corpus.add_opportunity(sample_opportunity)
            with pytest.raises(ConfigurationError):
                await context.corpus.list_opportunities()
        finally:
            await context.close()
