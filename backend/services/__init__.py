"""
Backend services: embeddings, response caching, the opportunity corpus,
search and the service context that wires them together.
"""

from backend.services.cache import ResponseCache, cache_key
from backend.services.embeddings import EmbeddingGateway, pseudo_embedding
from backend.services.opportunity_search import OpportunitySearch
from backend.services.vector_store import OpportunityCorpus, profile_vector_id

__all__ = [
    "EmbeddingGateway",
    "OpportunityCorpus",
    "OpportunitySearch",
    "ResponseCache",
    "cache_key",
    "profile_vector_id",
    "pseudo_embedding",
]
