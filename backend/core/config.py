"""
BidRadar Configuration
Central configuration management using Pydantic Settings
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application =====
    app_name: str = "BidRadar"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:5173"

    # ===== Cache Backend =====
    # memory | redis | upstash. Any unusable provider falls back to memory.
    cache_provider: Literal["memory", "redis", "upstash"] = "memory"
    cache_url: Optional[str] = None
    cache_password: Optional[str] = None
    cache_db: int = 0
    cache_default_ttl: int = 3600  # seconds
    cache_max_ttl: int = 86400  # 24 hours

    # ===== Vector Store Backend =====
    # pgvector | redis | memory. memory is never used as a fallback.
    vector_provider: Literal["pgvector", "redis", "memory"] = "pgvector"
    vector_database_url: Optional[str] = None  # postgresql+asyncpg://...
    vector_redis_url: Optional[str] = None
    vector_dimension: int = 1536
    opportunity_collection: str = "sam_opportunities"
    profile_collection: str = "company_profiles"

    # ===== Embeddings =====
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_cache_size: int = 1000

    # ===== Response Cache =====
    chat_cache_ttl: int = 300  # 5 minutes
    vector_cache_ttl: int = 600  # 10 minutes
    embedding_cache_ttl: int = 1800  # 30 minutes
    response_cache_sweep_interval: int = 300  # 5 minutes

    # ===== Matching =====
    matching_check_interval: int = 300  # 5 minutes
    matching_min_score: float = 70.0
    matching_max_alerts_per_profile: int = 10
    matching_enable_notifications: bool = True
    matching_auto_refresh: bool = True
    notification_webhook_url: Optional[str] = None

    # ===== Scoring =====
    # Blend of upstream vector similarity and the weighted factor sum
    scoring_vector_weight: float = 0.3
    scoring_factor_weight: float = 0.7


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
