"""Provider configuration for OpenAI-compatible embedding and scoring APIs."""

from typing import Optional

import openai

from knowledge_base.config import settings


def _validate_api_key(api_key: Optional[str], base_url: Optional[str], env_var: str) -> str:
    """Validate API key format and provide clear error messages for common issues.

    Raises:
        ValueError: If API key is missing, invalid, or malformed
    """
    # Custom base_url deployments (Ollama, proxies) may run without auth
    if not api_key and not base_url:
        raise ValueError(
            f"{env_var} environment variable is required. "
            "Please set it in your .env file with a valid API key."
        )

    if not api_key:
        return "not-needed"

    api_key = api_key.strip()
    if (
        not api_key
        or api_key.startswith("#")
        or "your-api-key" in api_key.lower()
        or "sk-your" in api_key.lower()
    ):
        raise ValueError(
            f"Invalid {env_var} detected. "
            "Check for placeholders or inline comments in your .env file."
        )

    return api_key


def get_embedding_client() -> openai.AsyncOpenAI:
    """Get OpenAI-compatible client for embeddings.

    Raises:
        ValueError: If API key is missing, invalid, or malformed
    """
    base_url = settings.embedding.base_url
    kwargs = {
        "api_key": _validate_api_key(settings.embedding.api_key, base_url, "OPENAI_API_KEY"),
        # Retries are handled by the embedding pipeline with its own backoff
        "max_retries": 0,
    }
    if base_url:
        kwargs["base_url"] = base_url

    return openai.AsyncOpenAI(**kwargs)


def get_llm_client() -> openai.AsyncOpenAI:
    """Get OpenAI-compatible client for relevance scoring.

    Raises:
        ValueError: If API key is missing, invalid, or malformed
    """
    base_url = settings.llm.base_url
    kwargs = {"api_key": _validate_api_key(settings.llm.api_key, base_url, "LLM_API_KEY")}
    if base_url:
        kwargs["base_url"] = base_url

    return openai.AsyncOpenAI(**kwargs)
