"""LLM reranking of retrieved chunks.

A scoring pass asks an LLM to grade every candidate chunk against the query on
a 0-10 scale. Candidates under the minimum score are dropped, the rest are
sorted by score and truncated to ``top_k``; ``rerank_score`` is the grade
divided by 10. Any failure degrades to the original order with a neutral
score, so reranking can never lose results that similarity search found.

Usage:
    from knowledge_base.retrieval.reranker import get_reranker

    reranker = get_reranker()
    ranked = await reranker.rerank("refund policy", chunks, top_k=5)
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from ..config import PROJECT_ROOT, settings
from ..ingestion.models import RankedChunk
from ..utils.providers import get_llm_client

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 0.5
SINGLE_CANDIDATE_SCORE = 1.0
CHUNK_SEPARATOR = "\n\n---\n\n"


class ChunkScore(BaseModel):
    """Grade for one candidate, by its position in the candidate list."""

    index: int
    score: float = Field(ge=0, le=10)
    reason: str = ""


class ScoringResponse(BaseModel):
    """Expected JSON body of the scoring completion."""

    ranked: List[ChunkScore] = Field(default_factory=list)


class RelevanceScorer(ABC):
    """Abstract base class for relevance scoring strategies."""

    @abstractmethod
    async def score(self, query: str, chunks: List[RankedChunk]) -> List[ChunkScore]:
        """Grade candidate chunks against a query.

        Args:
            query: User query
            chunks: Candidate chunks, indexed by position

        Returns:
            Scores on a 0-10 scale, in any order, possibly for a subset
        """
        pass


class LLMRelevanceScorer(RelevanceScorer):
    """Scores chunks with a single JSON-mode chat completion.

    Prompt file location (in order of priority):
    1. Explicit prompt_file parameter
    2. RERANK_PROMPT_FILE env var
    3. config/prompts/rerank.txt
    4. Built-in default prompt
    """

    DEFAULT_PROMPT = """You are an expert information retrieval system.
Your task is to rerank a list of document chunks based on their relevance to a user query.

USER QUERY: {query}

DOCUMENT CHUNKS:
{chunks}

INSTRUCTIONS:
1. Carefully analyze each chunk and determine how well it answers or provides context for the user query.
2. Assign a relevance score from 0 to 10 (10 being perfectly relevant).
3. Return the indices and scores in order of relevance.
4. Be strict: if a chunk is not relevant, give it a low score.

Respond with a JSON object of the form:
{{"ranked": [{{"index": <0-based chunk index>, "score": <0-10>, "reason": "<brief reason>"}}]}}"""

    def __init__(
        self,
        client=None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        prompt_file: Optional[str] = None,
    ):
        """Initialize the LLM scorer.

        Args:
            client: AsyncOpenAI-compatible client (lazy-loaded from settings if None)
            model: Chat model (default from settings)
            temperature: Sampling temperature (default from settings)
            max_tokens: Max tokens for the scoring response (default from settings)
            prompt_file: Path to custom prompt file (optional)
        """
        self._client = client
        self.model = model or settings.llm.model
        self.temperature = temperature if temperature is not None else settings.llm.temperature
        self.max_tokens = max_tokens or settings.rerank.max_tokens
        self._prompt_file = prompt_file
        self._prompt_template: Optional[str] = None

    @property
    def client(self):
        if self._client is None:
            self._client = get_llm_client()
        return self._client

    def _load_prompt(self) -> str:
        if self._prompt_template:
            return self._prompt_template

        prompt_paths = []
        if self._prompt_file:
            prompt_paths.append(Path(self._prompt_file))
        if env_path := os.getenv("RERANK_PROMPT_FILE"):
            prompt_paths.append(Path(env_path))
        prompt_paths.append(PROJECT_ROOT / "config" / "prompts" / "rerank.txt")

        for path in prompt_paths:
            if path.exists():
                try:
                    self._prompt_template = path.read_text(encoding="utf-8")
                    logger.info(f"Loaded rerank prompt from: {path}")
                    return self._prompt_template
                except Exception as e:
                    logger.warning(f"Failed to load prompt from {path}: {e}")

        logger.info("Using default rerank prompt (no custom file found)")
        self._prompt_template = self.DEFAULT_PROMPT
        return self._prompt_template

    async def score(self, query: str, chunks: List[RankedChunk]) -> List[ChunkScore]:
        chunks_formatted = CHUNK_SEPARATOR.join(
            f"[Chunk {i}]:\n{chunk.text}" for i, chunk in enumerate(chunks)
        )
        prompt = self._load_prompt().format(query=query, chunks=chunks_formatted)

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )

        content = response.choices[0].message.content or ""
        return ScoringResponse.model_validate(json.loads(content)).ranked


class Reranker:
    """Applies a relevance scorer and the score cutoff to retrieved chunks."""

    def __init__(self, scorer: RelevanceScorer, min_score: Optional[float] = None):
        """
        Args:
            scorer: Relevance scoring strategy
            min_score: Grades below this (0-10 scale) are dropped (default from settings)
        """
        self.scorer = scorer
        self.min_score = min_score if min_score is not None else settings.rerank.min_score

    async def rerank(
        self, query: str, chunks: List[RankedChunk], top_k: int = 5
    ) -> List[RankedChunk]:
        """
        Rerank chunks by LLM-judged relevance.

        Args:
            query: Original search query
            chunks: Candidates from similarity search
            top_k: Maximum number of chunks to return

        Returns:
            Chunks with rerank_score set, best first
        """
        if not chunks:
            return []
        if len(chunks) == 1:
            return [chunks[0].model_copy(update={"rerank_score": SINGLE_CANDIDATE_SCORE})]

        try:
            logger.info(f"Reranking {len(chunks)} chunks for query: '{query[:50]}'")
            scores = await self.scorer.score(query, chunks)

            reranked: List[RankedChunk] = []
            seen = set()
            for item in scores:
                # Ignore hallucinated or repeated indices
                if not 0 <= item.index < len(chunks) or item.index in seen:
                    continue
                seen.add(item.index)
                if item.score < self.min_score:
                    continue
                reranked.append(
                    chunks[item.index].model_copy(
                        update={"rerank_score": item.score / 10, "rerank_reason": item.reason}
                    )
                )

            reranked.sort(key=lambda c: c.rerank_score, reverse=True)
            reranked = reranked[:top_k]

            logger.info(f"Reranking complete. Selected top {len(reranked)} chunks")
            return reranked

        except Exception as e:
            logger.error(f"Reranking failed: {e}")
            logger.warning("Falling back to original ranking without reranking")
            return [
                chunk.model_copy(update={"rerank_score": FALLBACK_SCORE})
                for chunk in chunks[:top_k]
            ]


def get_reranker() -> Reranker:
    """Factory function to get the configured LLM reranker."""
    return Reranker(LLMRelevanceScorer())
