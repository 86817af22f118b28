"""Retrieval: similarity search, reranking and the agent search tool."""

from .engine import RetrievalEngine
from .reranker import LLMRelevanceScorer, RelevanceScorer, Reranker, get_reranker
from .tools import search_knowledge_base
from .types import KnowledgeBaseContext

__all__ = [
    "RetrievalEngine",
    "Reranker",
    "RelevanceScorer",
    "LLMRelevanceScorer",
    "get_reranker",
    "search_knowledge_base",
    "KnowledgeBaseContext",
]
