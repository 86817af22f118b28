"""Centralized configuration management for the knowledge base pipeline.

This module provides type-safe configuration with environment variable support
and sensible defaults. Embeddings and relevance scoring go through any
OpenAI-compatible API; documents, chunks and blobs live in Supabase.

Usage:
    from knowledge_base.config import settings

    # Access domain configs
    batch_size = settings.embedding.batch_size
    threshold = settings.search.similarity_threshold
    origins = settings.api.cors_origins

Environment Variables:
    See .env.example for full documentation of available settings.
"""

# Load .env BEFORE any settings are read (must be first)
from dotenv import load_dotenv

load_dotenv()

import logging  # noqa: E402
import os  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from functools import lru_cache  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import List, Optional  # noqa: E402

# Project root is 2 levels up from knowledge_base/config/__init__.py
PROJECT_ROOT = Path(__file__).parent.parent.parent.resolve()


def _get_clean_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable with validation and comment stripping.

    Handles common .env file issues:
    - Strips whitespace
    - Treats comment-only values as None
    - Validates no invalid characters like '#' in actual values

    Args:
        key: Environment variable name
        default: Default value if not found or invalid

    Returns:
        Cleaned value or default
    """
    value = os.getenv(key)

    if not value:
        return default

    value = value.strip()

    # Treat empty or comment-only values as None
    if not value or value.startswith("#"):
        return default

    # Validate no inline comments (invalid API keys)
    if "#" in value:
        logging.warning(
            f"Environment variable {key} contains '#' - likely malformed comment. "
            f"Using default value. Check your .env file."
        )
        return default

    return value


def _get_bool_env(key: str, default: str = "true") -> bool:
    return os.getenv(key, default).lower() == "true"


@dataclass(frozen=True)
class LLMConfig:
    """LLM configuration for the relevance-scoring pass.

    Environment Variables:
        LLM_MODEL: Model used to score candidate chunks (default: "gpt-4o")
        LLM_BASE_URL: Custom API base URL for OpenAI-compatible APIs
        LLM_API_KEY: API key (falls back to OPENAI_API_KEY)
        LLM_TEMPERATURE: Sampling temperature for scoring (default: 0)
    """

    model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o"))
    base_url: Optional[str] = field(default_factory=lambda: os.getenv("LLM_BASE_URL"))
    api_key: Optional[str] = field(
        default_factory=lambda: _get_clean_env("LLM_API_KEY") or _get_clean_env("OPENAI_API_KEY")
    )
    temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0"))
    )


@dataclass(frozen=True)
class EmbeddingProviderConfig:
    """Embedding provider configuration.

    The model and dimensions here are the tenant default used when neither the
    caller nor previously stored chunks pin an embedding configuration.

    Environment Variables:
        EMBEDDING_MODEL: Model name (default: "text-embedding-3-large")
        EMBEDDING_DIMENSIONS: Vector size (default: 1536)
        EMBEDDING_BASE_URL: Custom API base URL for OpenAI-compatible APIs
        EMBEDDING_API_KEY: API key (falls back to LLM_API_KEY, then OPENAI_API_KEY)
        EMBEDDING_BATCH_SIZE: Chunks embedded concurrently per batch (default: 5)
        EMBEDDING_MAX_RETRIES: Retries per chunk after a transient error (default: 3)
        EMBEDDING_RETRY_DELAY: Linear backoff unit in seconds (default: 5.0)
        EMBEDDING_BATCH_DELAY: Pause between batches in seconds (default: 0.5)
        EMBEDDING_TOKENIZER_MODEL: Tokenizer used for chunk sizing and token counts
    """

    model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-large")
    )
    dimensions: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))
    )
    base_url: Optional[str] = field(default_factory=lambda: os.getenv("EMBEDDING_BASE_URL"))
    api_key: Optional[str] = field(
        default_factory=lambda: (
            _get_clean_env("EMBEDDING_API_KEY")
            or _get_clean_env("LLM_API_KEY")
            or _get_clean_env("OPENAI_API_KEY")
        )
    )
    batch_size: int = field(default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "5")))
    max_retries: int = field(default_factory=lambda: int(os.getenv("EMBEDDING_MAX_RETRIES", "3")))
    retry_delay: float = field(
        default_factory=lambda: float(os.getenv("EMBEDDING_RETRY_DELAY", "5.0"))
    )
    batch_delay: float = field(
        default_factory=lambda: float(os.getenv("EMBEDDING_BATCH_DELAY", "0.5"))
    )
    tokenizer_model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_TOKENIZER_MODEL", "Xenova/text-embedding-ada-002")
    )


@dataclass(frozen=True)
class StorageConfig:
    """Supabase database and storage configuration.

    Environment Variables:
        SUPABASE_URL: Project URL
        SUPABASE_SERVICE_KEY: Service role key
        KB_STORAGE_BUCKET: Storage bucket for uploaded files (default: "knowledge-base-docs")
        KB_DOCUMENTS_TABLE: Document table (default: "kb_documents")
        KB_CHUNKS_TABLE: Chunk table (default: "kb_chunks")
        KB_MATCH_FUNCTION: Similarity search RPC (default: "match_kb_chunks")
    """

    supabase_url: Optional[str] = field(default_factory=lambda: _get_clean_env("SUPABASE_URL"))
    supabase_key: Optional[str] = field(
        default_factory=lambda: _get_clean_env("SUPABASE_SERVICE_KEY")
    )
    bucket: str = field(
        default_factory=lambda: os.getenv("KB_STORAGE_BUCKET", "knowledge-base-docs")
    )
    documents_table: str = field(
        default_factory=lambda: os.getenv("KB_DOCUMENTS_TABLE", "kb_documents")
    )
    chunks_table: str = field(default_factory=lambda: os.getenv("KB_CHUNKS_TABLE", "kb_chunks"))
    match_function: str = field(
        default_factory=lambda: os.getenv("KB_MATCH_FUNCTION", "match_kb_chunks")
    )


@dataclass(frozen=True)
class UploadConfig:
    """Upload validation configuration.

    Environment Variables:
        KB_MAX_FILE_SIZE_MB: Maximum accepted upload size in megabytes (default: 10)
    """

    max_file_size_mb: float = field(
        default_factory=lambda: float(os.getenv("KB_MAX_FILE_SIZE_MB", "10"))
    )


@dataclass(frozen=True)
class SearchConfig:
    """Similarity search configuration.

    Environment Variables:
        SEARCH_DEFAULT_LIMIT: Default number of results (default: 5)
        SEARCH_MAX_LIMIT: Maximum allowed results (default: 50)
        SEARCH_SIMILARITY_THRESHOLD: Results must score strictly above this (default: 0.5)
    """

    default_limit: int = field(default_factory=lambda: int(os.getenv("SEARCH_DEFAULT_LIMIT", "5")))
    max_limit: int = field(default_factory=lambda: int(os.getenv("SEARCH_MAX_LIMIT", "50")))
    similarity_threshold: float = field(
        default_factory=lambda: float(os.getenv("SEARCH_SIMILARITY_THRESHOLD", "0.5"))
    )


@dataclass(frozen=True)
class RerankConfig:
    """LLM reranking configuration.

    Environment Variables:
        RERANK_ENABLED: Rerank search results by default (default: false)
        RERANK_MIN_SCORE: Candidates scored below this (0-10 scale) are dropped (default: 3)
        RERANK_CANDIDATE_MULTIPLIER: Candidates fetched per requested result (default: 3)
        RERANK_MAX_TOKENS: Max tokens for the scoring response (default: 1000)
    """

    enabled: bool = field(default_factory=lambda: _get_bool_env("RERANK_ENABLED", "false"))
    min_score: float = field(default_factory=lambda: float(os.getenv("RERANK_MIN_SCORE", "3")))
    candidate_multiplier: int = field(
        default_factory=lambda: int(os.getenv("RERANK_CANDIDATE_MULTIPLIER", "3"))
    )
    max_tokens: int = field(default_factory=lambda: int(os.getenv("RERANK_MAX_TOKENS", "1000")))


@dataclass(frozen=True)
class APIConfig:
    """API server configuration.

    Environment Variables:
        API_HOST: Server host (default: "0.0.0.0")
        API_PORT: Server port (default: 8000)
        SLOW_REQUEST_THRESHOLD_MS: Slow request logging threshold (default: 500)
        CORS_ORIGINS: Comma-separated allowed origins
    """

    host: str = field(default_factory=lambda: os.getenv("API_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("API_PORT", "8000")))
    slow_request_threshold_ms: float = field(
        default_factory=lambda: float(os.getenv("SLOW_REQUEST_THRESHOLD_MS", "500"))
    )
    cors_origins: List[str] = field(
        default_factory=lambda: os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
    )


@dataclass(frozen=True)
class Settings:
    """Main application settings aggregating all domain configs.

    Usage:
        from knowledge_base.config import settings

        batch_size = settings.embedding.batch_size
        bucket = settings.storage.bucket
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingProviderConfig = field(default_factory=EmbeddingProviderConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    api: APIConfig = field(default_factory=APIConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings singleton.

    Settings are loaded once and cached for the lifetime of the application.
    To reload settings, clear the cache: get_settings.cache_clear()
    """
    return Settings()


# Convenience export - import as: from knowledge_base.config import settings
settings = get_settings()

__all__ = [
    "Settings",
    "LLMConfig",
    "EmbeddingProviderConfig",
    "StorageConfig",
    "UploadConfig",
    "SearchConfig",
    "RerankConfig",
    "APIConfig",
    "get_settings",
    "settings",
    "PROJECT_ROOT",
]
