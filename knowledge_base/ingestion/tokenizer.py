"""Token counting shared by chunking and the embedding pipeline.

Chunk sizes are expressed in tokens and each stored chunk records its token
count, so both sides must measure with the same tokenizer.
"""

import logging
import math
from functools import lru_cache
from typing import Callable, Optional

from transformers import AutoTokenizer

from knowledge_base.config import settings

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]


def approximate_token_count(text: str) -> int:
    """Rough estimation: ~4 characters per token."""
    return math.ceil(len(text) / 4)


@lru_cache()
def _load_tokenizer(model_id: str):
    logger.info(f"Initializing tokenizer: {model_id}")
    return AutoTokenizer.from_pretrained(model_id)


def get_token_counter(model_id: Optional[str] = None) -> TokenCounter:
    """Get a token counter backed by a Hugging Face tokenizer.

    Falls back to the character estimate when the tokenizer cannot be loaded
    (offline hosts, missing model), so ingestion never fails on token counting.

    Args:
        model_id: Tokenizer repository id (default from settings)

    Returns:
        Callable returning the token count of a string
    """
    model_id = model_id or settings.embedding.tokenizer_model

    try:
        tokenizer = _load_tokenizer(model_id)
    except Exception as e:
        logger.warning(f"Tokenizer {model_id} unavailable, using character estimate: {e}")
        return approximate_token_count

    def count_tokens(text: str) -> int:
        return len(tokenizer.encode(text, add_special_tokens=False))

    return count_tokens
