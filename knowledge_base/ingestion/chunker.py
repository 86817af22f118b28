"""
Token-aware linear text chunking.

Wraps LangChain's RecursiveCharacterTextSplitter with a token length function.
Separator priority depends on whether sentence boundaries should be respected:

- respect_sentences: paragraph > line > sentence punctuation > clause > word
- otherwise: paragraph > line > word

If the splitter rejects its configuration or fails, a simple sentence
accumulator takes over so a document is never dropped for chunking reasons.
"""

import logging
import re
from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter

from .tokenizer import TokenCounter, approximate_token_count

logger = logging.getLogger(__name__)

SENTENCE_SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", ""]
PLAIN_SEPARATORS = ["\n\n", "\n", " ", ""]

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


class TextChunker:
    """Splits text into overlapping chunks measured in tokens."""

    def __init__(self, count_tokens: TokenCounter = approximate_token_count):
        """
        Initialize chunker.

        Args:
            count_tokens: Token counter shared with the embedding pipeline
        """
        self.count_tokens = count_tokens

    def split(
        self,
        text: str,
        chunk_size: int,
        overlap: int,
        respect_sentences: bool = True,
    ) -> List[str]:
        """
        Split text into chunks of at most chunk_size tokens.

        Args:
            text: Text to split
            chunk_size: Maximum tokens per chunk
            overlap: Tokens shared between consecutive chunks
            respect_sentences: Prefer sentence boundaries over word boundaries

        Returns:
            Non-empty chunk texts in document order
        """
        if not text or not text.strip():
            return []

        separators = SENTENCE_SEPARATORS if respect_sentences else PLAIN_SEPARATORS

        try:
            splitter = RecursiveCharacterTextSplitter(
                chunk_size=chunk_size,
                chunk_overlap=overlap,
                separators=separators,
                length_function=self.count_tokens,
                keep_separator="end",
            )
            chunks = splitter.split_text(text)
        except Exception as e:
            logger.error(f"Text splitter failed: {e}, falling back to sentence chunking")
            chunks = self._simple_fallback_chunk(text, chunk_size, overlap)

        return [chunk for chunk in chunks if chunk.strip()]

    def _simple_fallback_chunk(self, text: str, chunk_size: int, overlap: int) -> List[str]:
        """
        Accumulate sentences until the next one would exceed chunk_size.

        Each new chunk starts with the trailing words of the previous one, up to
        overlap tokens. Out-of-range sizes are clamped so this never fails.

        Args:
            text: Text to split
            chunk_size: Maximum tokens per chunk
            overlap: Tokens carried into the next chunk

        Returns:
            List of chunk texts
        """
        chunk_size = max(int(chunk_size), 1)
        overlap = min(max(int(overlap), 0), chunk_size - 1)

        chunks: List[str] = []
        current = ""

        for sentence in _SENTENCE_BOUNDARY.split(text):
            if not sentence:
                continue

            candidate = f"{current} {sentence}" if current else sentence
            if current and self.count_tokens(candidate) > chunk_size:
                chunks.append(current.strip())
                tail = self._overlap_tail(current, overlap)
                current = f"{tail} {sentence}" if tail else sentence
            else:
                current = candidate

        if current.strip():
            chunks.append(current.strip())

        logger.info(f"Created {len(chunks)} chunks using simple fallback")
        return chunks

    def _overlap_tail(self, text: str, overlap: int) -> str:
        """Trailing words of text that fit within overlap tokens."""
        if overlap <= 0:
            return ""

        tail: List[str] = []
        for word in reversed(text.split()):
            if self.count_tokens(" ".join([word, *tail])) > overlap:
                break
            tail.insert(0, word)

        return " ".join(tail)
