"""
Embedding generation for chunks and search queries.

Supports OpenAI and any OpenAI-compatible API via centralized configuration in
knowledge_base.config. Rate limits (429), quota errors (403) and connection
failures are retried with linear backoff; any other provider error is fatal.
"""

import asyncio
import logging
from typing import List, Optional

from openai import APIConnectionError, PermissionDeniedError, RateLimitError

from ..config import settings
from ..errors import EmbeddingFatalError, EmbeddingTransientError
from ..utils.providers import get_embedding_client
from .models import EmbeddingConfig

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {403, 429}

# Provider input limit in tokens; text is cut at ~4 characters per token
MAX_INPUT_TOKENS = 8191


def is_transient_error(error: Exception) -> bool:
    """Whether a provider error is worth retrying."""
    if isinstance(error, (RateLimitError, PermissionDeniedError, APIConnectionError)):
        return True
    return getattr(error, "status_code", None) in TRANSIENT_STATUS_CODES


def truncate_to_max_input(text: str, max_tokens: int = MAX_INPUT_TOKENS) -> str:
    """Cut text that would exceed the provider input limit, at a word boundary if close."""
    max_chars = max_tokens * 4
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    last_space = truncated.rfind(" ")
    return truncated[:last_space] if last_space > max_chars * 0.8 else truncated


class EmbeddingGenerator:
    """Generates embeddings with per-call retry and dimension checks."""

    def __init__(
        self,
        client=None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ):
        """
        Initialize embedding generator.

        Args:
            client: AsyncOpenAI-compatible client (lazy-loaded from settings if None)
            max_retries: Retries per text after the first transient error (default from settings)
            retry_delay: Linear backoff unit in seconds (default from settings)
        """
        self._client = client
        self.max_retries = (
            max_retries if max_retries is not None else settings.embedding.max_retries
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.embedding.retry_delay
        )

    @property
    def client(self):
        """Lazy load embedding client on first access."""
        if self._client is None:
            self._client = get_embedding_client()
        return self._client

    async def generate_embedding(
        self, text: str, config: EmbeddingConfig, chunk_index: Optional[int] = None
    ) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed
            config: Model and dimensions to request
            chunk_index: Chunk ordinal, for error reporting

        Returns:
            Embedding vector of exactly config.dimensions floats

        Raises:
            EmbeddingTransientError: If transient errors persist through every attempt
            EmbeddingFatalError: On any other provider error or a wrong-sized vector
        """
        params = {"model": config.model, "input": truncate_to_max_input(text)}
        if config.sends_dimensions:
            params["dimensions"] = config.dimensions

        # The first call plus one per retry
        attempts = max(self.max_retries, 0) + 1

        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.embeddings.create(**params)
                embedding = response.data[0].embedding
                break

            except Exception as e:
                if not is_transient_error(e):
                    logger.error(f"Embedding provider error with {config.model}: {e}")
                    raise EmbeddingFatalError(str(e), chunk_index=chunk_index) from e

                if attempt == attempts:
                    raise EmbeddingTransientError(
                        f"Embedding failed after {attempts} attempts: {e}",
                        status_code=getattr(e, "status_code", None),
                    ) from e

                delay = attempt * self.retry_delay
                logger.warning(
                    f"Transient embedding error (attempt {attempt}/{attempts}), "
                    f"retrying in {delay}s: {e}"
                )
                await asyncio.sleep(delay)

        if len(embedding) != config.dimensions:
            raise EmbeddingFatalError(
                f"{config.model} returned {len(embedding)} dimensions, expected {config.dimensions}",
                chunk_index=chunk_index,
            )

        return embedding

    async def embed_query(self, query: str, config: EmbeddingConfig) -> List[float]:
        """
        Generate embedding for a search query.

        Args:
            query: Search query
            config: Embedding config matching the stored chunks

        Returns:
            Query embedding
        """
        return await self.generate_embedding(query, config)
