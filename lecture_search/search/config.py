"""Configuration for hybrid video search.

Provides Pydantic settings for configuring:
- Storage connection pool (PostgreSQL with pgvector and pg_trgm)
- Remote embedding endpoint
- Candidate retrieval limits
- Ranking strategy and hybrid blend weights

Environment Variables:
    SEARCH_DATABASE_URL: PostgreSQL URL (falls back to POSTGRES_URL, DATABASE_URL)
    SEARCH_DB_POOL_SIZE: Maximum pooled connections (default: 20)
    SEARCH_DB_POOL_TIMEOUT: Seconds to wait for a free connection (default: 2.0)
    SEARCH_DB_QUERY_TIMEOUT: Seconds allowed per retrieval query (default: 5.0)
    SEARCH_EMBEDDING_API_URL: Embedding endpoint (default: OpenAI embeddings)
    SEARCH_EMBEDDING_API_KEY: Bearer token (falls back to OPENAI_API_KEY)
    SEARCH_EMBEDDING_MODEL: Embedding model id (default: text-embedding-3-small)
    SEARCH_EMBEDDING_TIMEOUT: Seconds allowed per embedding call (default: 5.0)
    SEARCH_STRATEGY: vector or hybrid (default: vector)
    SEARCH_LOG_LEVEL: Logging level for the server (default: INFO)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SearchConfig(BaseSettings):
    """Configuration for the video search engine.

    Configures the storage pool, embedding provider, retrieval limits
    and ranking strategy.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Storage configuration
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SEARCH_DATABASE_URL", "POSTGRES_URL", "DATABASE_URL", "database_url"
        ),
        description="PostgreSQL connection URL.",
    )
    db_pool_size: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Maximum number of pooled connections (no overflow).",
    )
    db_pool_timeout: float = Field(
        default=2.0,
        gt=0,
        description="Seconds to wait for a pooled connection before failing.",
    )
    db_pool_recycle: int = Field(
        default=1800,
        ge=-1,
        description="Seconds after which pooled connections are recycled.",
    )
    db_query_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds allowed for a single retrieval query.",
    )

    # Embedding configuration
    embedding_api_url: str = Field(
        default="https://api.openai.com/v1/embeddings",
        description="Remote embedding endpoint (OpenAI-compatible).",
    )
    embedding_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SEARCH_EMBEDDING_API_KEY", "OPENAI_API_KEY", "embedding_api_key"
        ),
        description="Bearer token for the embedding endpoint.",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model identifier sent with every request.",
    )
    embedding_dimensions: int = Field(
        default=1536,
        ge=1,
        description="Expected length of returned embedding vectors.",
    )
    embedding_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds allowed for a single embedding call.",
    )

    # Retrieval configuration
    default_result_limit: int = Field(
        default=50,
        ge=1,
        description="Number of videos returned when the caller gives no limit.",
    )
    max_result_limit: int = Field(
        default=200,
        ge=1,
        description="Upper bound accepted for a caller-provided limit.",
    )
    min_nearest_limit: int = Field(
        default=200,
        ge=1,
        description="Floor for the number of raw nearest neighbors fetched.",
    )
    nearest_multiplier: int = Field(
        default=20,
        ge=1,
        description="Raw neighbors fetched per requested result.",
    )
    default_min_similarity: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Similarity floor applied by the hybrid strategy.",
    )

    # Ranking configuration
    strategy: Literal["vector", "hybrid"] = Field(
        default="vector",
        description="'vector' (embedding required) or 'hybrid' (lexical + trigram + vector).",
    )
    lexical_weight: float = Field(default=0.3, ge=0.0)
    trigram_weight: float = Field(default=0.2, ge=0.0)
    vector_weight: float = Field(default=0.5, ge=0.0)
    trigram_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum pg_trgm word_similarity for a fuzzy candidate.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        """Accept lowercase level names."""
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_limits_and_weights(self) -> SearchConfig:
        """Ensure limits are consistent and the blend has a non-zero weight."""
        if self.max_result_limit < self.default_result_limit:
            raise ValueError("max_result_limit must be >= default_result_limit")
        if self.lexical_weight + self.trigram_weight + self.vector_weight <= 0:
            raise ValueError("at least one hybrid weight must be positive")
        return self

    @property
    def async_database_url(self) -> str | None:
        """Database URL rewritten for the asyncpg driver."""
        if self.database_url is None:
            return None
        url = self.database_url
        for prefix in ("postgresql://", "postgres://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix) :]
        return url

    @property
    def blend_weights(self) -> tuple[float, float, float]:
        """Hybrid weights (lexical, trigram, vector) normalized to sum to 1."""
        total = self.lexical_weight + self.trigram_weight + self.vector_weight
        return (
            self.lexical_weight / total,
            self.trigram_weight / total,
            self.vector_weight / total,
        )

    def nearest_limit(self, result_limit: int) -> int:
        """Number of raw neighbors to over-fetch for a result page."""
        return max(self.min_nearest_limit, result_limit * self.nearest_multiplier)


@lru_cache
def get_search_config() -> SearchConfig:
    """Get cached search configuration.

    Returns:
        Singleton SearchConfig instance loaded from environment.
    """
    return SearchConfig()
