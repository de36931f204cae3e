"""
Environment configuration module.

Centralizes all environment variable access with sensible defaults.
Load values from .env file or system environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .memcore.config import MemoryCoreConfig

# Load .env file if it exists
load_dotenv()


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default fallback."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int = 0) -> int:
    """Get environment variable as integer with default fallback."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean with default fallback."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


@dataclass
class EmbeddingEnvConfig:
    """Embedding provider credentials and endpoint."""

    api_key: str = field(
        default_factory=lambda: get_env("INKWELL_EMBEDDING_API_KEY")
        or get_env("TOGETHER_API_KEY")
    )
    base_url: str = field(
        default_factory=lambda: get_env(
            "INKWELL_EMBEDDING_BASE_URL", "https://api.together.xyz/v1"
        )
    )
    model: str = field(
        default_factory=lambda: get_env(
            "INKWELL_EMBEDDING_MODEL", "BAAI/bge-large-en-v1.5"
        )
    )
    dimension: int = field(
        default_factory=lambda: get_env_int("INKWELL_EMBEDDING_DIMENSION", 1024)
    )
    timeout_s: float = field(
        default_factory=lambda: get_env_float("INKWELL_EMBEDDING_TIMEOUT", 10.0)
    )


@dataclass
class StorageEnvConfig:
    """Durable memory storage configuration."""

    backend: str = field(default_factory=lambda: get_env("INKWELL_MEMORY_BACKEND", "sqlite"))
    db_path: str = field(
        default_factory=lambda: get_env("INKWELL_MEMORY_DB", "./memory/inkwell.db")
    )


@dataclass
class CacheEnvConfig:
    """Bounded cache budgets."""

    max_size_mb: int = field(default_factory=lambda: get_env_int("INKWELL_CACHE_MAX_MB", 50))
    max_entries: int = field(
        default_factory=lambda: get_env_int("INKWELL_CACHE_MAX_ENTRIES", 1000)
    )


@dataclass
class EnvConfig:
    """Main environment configuration container."""

    memory_enabled: bool = field(
        default_factory=lambda: get_env_bool("INKWELL_MEMORY_ENABLED", True)
    )
    retention_policy: str = field(
        default_factory=lambda: get_env("INKWELL_MEMORY_RETENTION", "unlimited")
    )
    embedding: EmbeddingEnvConfig = field(default_factory=EmbeddingEnvConfig)
    storage: StorageEnvConfig = field(default_factory=StorageEnvConfig)
    cache: CacheEnvConfig = field(default_factory=CacheEnvConfig)

    def to_memory_config(self) -> MemoryCoreConfig:
        """Build the memory core configuration from these environment values."""
        return MemoryCoreConfig.model_validate(
            {
                "enabled": self.memory_enabled,
                "storage": {
                    "backend": self.storage.backend,
                    "sqlite_db_path": self.storage.db_path,
                },
                "cache": {
                    "max_size_bytes": self.cache.max_size_mb * 1024 * 1024,
                    "max_entries": self.cache.max_entries,
                },
                "embedding": {
                    "api_key": self.embedding.api_key or None,
                    "base_url": self.embedding.base_url,
                    "model": self.embedding.model,
                    "dimension": self.embedding.dimension,
                    "timeout_s": self.embedding.timeout_s,
                },
                "retention": {"policy": self.retention_policy},
            }
        )


# Global configuration instance
_config: Optional[EnvConfig] = None


def get_config() -> EnvConfig:
    """Get the global configuration instance (singleton)."""
    global _config
    if _config is None:
        _config = EnvConfig()
    return _config


def reload_config() -> EnvConfig:
    """Reload configuration from environment variables."""
    global _config
    load_dotenv(override=True)
    _config = EnvConfig()
    return _config
