"""
Service context.

Builds every long-lived component once from Settings and hands them out
explicitly. The API keeps one instance on ``app.state``; tests build their
own with overridden settings.
"""
from dataclasses import dataclass
from typing import Optional

import structlog

from agents.delivery.alerter import AlertBuilder
from agents.delivery.channels import LogNotificationSink, NotificationSink, WebhookNotificationSink
from agents.matching.matcher import MatchingConfig, OpportunityMatcher
from agents.matching.models import ScoringWeights
from agents.matching.scorer import RelevanceScorer
from backend.adapters.factory import BackendSelector
from backend.adapters.ports import CacheStore, VectorStore
from backend.core.config import Settings
from backend.services.cache import ResponseCache
from backend.services.embeddings import EmbeddingGateway
from backend.services.opportunity_search import OpportunitySearch
from backend.services.vector_store import OpportunityCorpus

logger = structlog.get_logger().bind(service="context")


@dataclass
class ServiceContext:
    settings: Settings
    selector: BackendSelector
    cache: CacheStore
    vector_store: VectorStore
    response_cache: ResponseCache
    embeddings: EmbeddingGateway
    corpus: OpportunityCorpus
    scorer: RelevanceScorer
    search: OpportunitySearch
    matcher: OpportunityMatcher

    @classmethod
    def create(
        cls,
        settings: Settings,
        selector: Optional[BackendSelector] = None,
        embeddings: Optional[EmbeddingGateway] = None,
        sink: Optional[NotificationSink] = None,
        **matcher_kwargs,
    ) -> "ServiceContext":
        """
        Wire the component graph. Nothing connects to a backend here;
        adapters resolve on first use.
        """
        selector = selector or BackendSelector(settings)
        cache = CacheStore(selector)
        vector_store = VectorStore(selector, dimension=settings.vector_dimension)

        response_cache = ResponseCache(
            cache,
            chat_ttl=settings.chat_cache_ttl,
            vector_ttl=settings.vector_cache_ttl,
            embedding_ttl=settings.embedding_cache_ttl,
            sweep_interval=settings.response_cache_sweep_interval,
        )
        embeddings = embeddings or EmbeddingGateway(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimension=settings.vector_dimension,
            cache_size=settings.embedding_cache_size,
            response_cache=response_cache,
        )
        corpus = OpportunityCorpus(
            vector_store,
            embeddings,
            opportunity_collection=settings.opportunity_collection,
            profile_collection=settings.profile_collection,
        )
        scorer = RelevanceScorer(
            weights=ScoringWeights(),
            vector_weight=settings.scoring_vector_weight,
            factor_weight=settings.scoring_factor_weight,
        )

        if sink is None:
            if settings.notification_webhook_url:
                sink = WebhookNotificationSink(settings.notification_webhook_url)
            else:
                sink = LogNotificationSink()

        matcher = OpportunityMatcher(
            corpus,
            scorer=scorer,
            alerter=AlertBuilder(sink),
            config=MatchingConfig.from_settings(settings),
            **matcher_kwargs,
        )

        return cls(
            settings=settings,
            selector=selector,
            cache=cache,
            vector_store=vector_store,
            response_cache=response_cache,
            embeddings=embeddings,
            corpus=corpus,
            scorer=scorer,
            search=OpportunitySearch(corpus, scorer, response_cache),
            matcher=matcher,
        )

    async def start(self) -> None:
        self.response_cache.start_sweeper()
        logger.info("service_context_started")

    async def close(self) -> None:
        await self.matcher.close()
        await self.response_cache.stop_sweeper()
        await self.embeddings.close()
        sink = self.matcher.alerter.sink
        if isinstance(sink, WebhookNotificationSink):
            await sink.close()
        await self.selector.close()
        logger.info("service_context_closed")
