"""
BidRadar API Routers
FastAPI router modules for the matching engine.
"""
from backend.api import cache, health, matching

__all__ = [
    "cache",
    "health",
    "matching",
]
