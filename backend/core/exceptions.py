"""
Custom Exception Classes for BidRadar.

Domain errors raised by the adapter and matching layers, plus the
standardized HTTP exceptions used by the API endpoints.
"""
from typing import Optional

from fastapi import HTTPException, status


class BidRadarError(Exception):
    """Base class for domain errors."""


class ConfigurationError(BidRadarError):
    """A required backend is not configured. Never retried."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class VectorStoreError(BidRadarError):
    """A vector backend operation failed."""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.collection = collection


class EmbeddingError(BidRadarError):
    """The embedding provider returned nothing usable."""


class NotFoundError(HTTPException):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource: str, id: str = None):
        detail = f"{resource} not found" + (f": {id}" if id else "")
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(HTTPException):
    """Exception raised when request validation fails."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class ServiceUnavailableError(HTTPException):
    """Exception raised when a backing service cannot be used."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)
