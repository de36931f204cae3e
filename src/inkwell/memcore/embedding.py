"""Embedding gateway for the memory core.

Wraps an external embedding provider with input truncation, a call
timeout and a zero-vector fallback. Callers treat an all-zero vector as
"no signal": similarity against it is 0 and retrieval falls back to
keyword scoring.
"""

from __future__ import annotations

import asyncio
import struct
from typing import Protocol, runtime_checkable

from loguru import logger
from openai import AsyncOpenAI

from .config import EmbeddingConfig


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that can turn text into a fixed-dimension vector."""

    async def embed(self, text: str, max_chars: int) -> list[float]:
        """Embed ``text`` (already truncated to ``max_chars``). May raise."""
        ...


class OpenAIEmbeddingProvider:
    """Embedding provider for any OpenAI-compatible ``/embeddings`` endpoint.

    Defaults to Together AI's hosted ``BAAI/bge-large-en-v1.5``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "BAAI/bge-large-en-v1.5",
        base_url: str = "https://api.together.xyz/v1",
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        logger.info(f"OpenAIEmbeddingProvider initialized: model={model}, base_url={base_url}")

    async def embed(self, text: str, max_chars: int) -> list[float]:
        response = await self._client.embeddings.create(
            model=self.model,
            input=text[:max_chars],
        )
        if not response.data:
            raise ValueError("Embedding response contained no data")
        return list(response.data[0].embedding)


class EmbeddingGateway:
    """Truncating, timeout-bounded front for an embedding provider.

    ``embed`` never raises. Without a provider (no credentials configured)
    every call returns the zero vector.
    """

    def __init__(
        self,
        provider: EmbeddingProvider | None = None,
        dimension: int = 1024,
        max_chars: int = 8000,
        timeout_s: float = 10.0,
    ):
        self.provider = provider
        self.dimension = dimension
        self.max_chars = max_chars
        self.timeout_s = timeout_s

        if provider is None:
            logger.warning(
                "No embedding provider configured; memory retrieval will use keyword fallback"
            )

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "EmbeddingGateway":
        """Build a gateway, leaving the provider unset when no API key is configured."""
        provider: EmbeddingProvider | None = None
        if config.provider == "openai" and config.api_key:
            provider = OpenAIEmbeddingProvider(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
            )
        return cls(
            provider=provider,
            dimension=config.dimension,
            max_chars=config.max_chars,
            timeout_s=config.timeout_s,
        )

    @property
    def available(self) -> bool:
        return self.provider is not None

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimension

    async def embed(self, text: str) -> list[float]:
        """Embed text, returning the zero vector on any failure.

        Args:
            text: Input text; truncated to ``max_chars`` before the call

        Returns:
            Vector of length ``dimension``
        """
        if self.provider is None:
            return self.zero_vector()

        truncated = text[: self.max_chars]
        try:
            vector = await asyncio.wait_for(
                self.provider.embed(truncated, self.max_chars),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Embedding request timed out after {self.timeout_s}s")
            return self.zero_vector()
        except Exception as e:
            logger.warning(f"Embedding request failed: {e}")
            return self.zero_vector()

        if not vector or len(vector) != self.dimension:
            logger.warning(
                f"Embedding provider returned {len(vector) if vector else 0} dimensions, "
                f"expected {self.dimension}"
            )
            return self.zero_vector()
        return [float(x) for x in vector]


def is_zero(vector: list[float]) -> bool:
    """True for an empty or all-zero vector."""
    return not any(vector)


def serialize_embedding(embedding: list[float]) -> bytes:
    """Pack an embedding as little-endian float32 for BLOB storage."""
    return struct.pack(f"<{len(embedding)}f", *embedding)


def deserialize_embedding(blob: bytes | None) -> list[float]:
    if not blob:
        return []
    count = len(blob) // 4  # float32 = 4 bytes
    return list(struct.unpack(f"<{count}f", blob))
