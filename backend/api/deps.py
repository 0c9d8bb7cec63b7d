"""
Shared API dependencies.
"""
from fastapi import Request

from agents.matching.matcher import OpportunityMatcher
from backend.core.exceptions import ServiceUnavailableError
from backend.services.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    """Service context created in the application lifespan."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise ServiceUnavailableError("Service context is not initialized")
    return context


def get_matcher(request: Request) -> OpportunityMatcher:
    return get_context(request).matcher
