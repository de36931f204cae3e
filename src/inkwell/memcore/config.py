"""Memory core configuration models."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, model_validator


class StorageConfig(BaseModel):
    """Durable memory storage configuration."""

    backend: str = "sqlite"  # "sqlite" or "memory"
    sqlite_db_path: str = "./memory/inkwell.db"
    read_timeout_s: float = 5.0

    @model_validator(mode="after")
    def _validate_paths(self) -> "StorageConfig":
        normalized = os.path.normpath(self.sqlite_db_path)
        parts = normalized.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValueError(
                f"sqlite_db_path must not contain '..' components: "
                f"{self.sqlite_db_path!r}"
            )
        self.sqlite_db_path = normalized
        return self


class CacheConfig(BaseModel):
    """Bounded cache budgets and background sweep intervals."""

    max_size_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    max_entries: int = Field(default=1000, ge=1)
    default_ttl_ms: int = Field(default=10 * 60 * 1000, ge=1)
    low_water_ratio: float = Field(default=0.8, gt=0.0, le=1.0)
    pressure_ratio: float = Field(default=0.9, gt=0.0, le=1.0)
    cleanup_interval_s: float = 300.0
    monitor_interval_s: float = 60.0


class ConversationConfig(BaseModel):
    """Conversation window configuration."""

    window_size: int = Field(default=20, ge=1)
    summary_threshold: int = Field(default=50, ge=1)
    ttl_ms: int = 30 * 60 * 1000
    max_topics: int = 10
    max_key_moments: int = 3
    max_overflow_messages: int = 200

    @model_validator(mode="after")
    def _validate_threshold(self) -> "ConversationConfig":
        if self.summary_threshold <= self.window_size:
            raise ValueError(
                "summary_threshold must be greater than window_size "
                f"({self.summary_threshold} <= {self.window_size})"
            )
        return self


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: str = "openai"  # "openai" (any OpenAI-compatible API) or "none"
    model: str = "BAAI/bge-large-en-v1.5"
    base_url: str = "https://api.together.xyz/v1"
    api_key: str | None = None
    dimension: int = 1024  # BAAI/bge-large-en-v1.5 output size
    max_chars: int = 8000
    timeout_s: float = 10.0


class RetrievalConfig(BaseModel):
    """Vector and fallback retrieval tuning.

    The thresholds are tunable defaults, not validated constants.
    """

    top_k: int = 10
    fetch_multiplier: int = Field(default=3, ge=3)
    min_similarity: float = 0.6
    story_min_similarity: float = 0.6
    fallback_threshold: float = 0.1
    keyword_increment: float = 0.3
    min_keyword_length: int = 3


class MonitorConfig(BaseModel):
    """Resource monitor configuration."""

    max_entries: int = 100
    slow_operation_ms: float = 1000.0
    stressed_response_ms: float = 2000.0
    stressed_memory_mb: float = 500.0
    stressed_slow_operations: int = 3
    sample_interval_s: float = 30.0


class RetentionConfig(BaseModel):
    """Memory retention policy selection."""

    policy: str = "unlimited"  # "unlimited", "max_age", "max_count"
    max_age_days: float = 365.0
    max_count: int = 5000


class MemoryCoreConfig(BaseModel):
    """Top-level memory core configuration."""

    enabled: bool = True
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
