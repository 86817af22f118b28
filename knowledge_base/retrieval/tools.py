"""Knowledge base search tool for the conversational agent.

The agent's only entry into retrieval. Results come back as numbered
citations the agent can quote; the structured sources are left on the context
for the caller to render.
"""

import logging

from pydantic_ai import RunContext

from ..config import settings
from .types import KnowledgeBaseContext

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.6

NO_RESULTS_MESSAGE = (
    "NO_RESULTS: No relevant information was found in the knowledge base for this query. "
    "Tell the user you could not find an answer in the available documents."
)


async def search_knowledge_base(
    ctx: RunContext[KnowledgeBaseContext], query: str, limit: int | None = None
) -> str:
    """
    Search the knowledge base using semantic similarity.

    Args:
        query: The search query to find relevant information
        limit: Maximum number of results to return (default from settings)

    Returns:
        Formatted search results with source citations and relevance scores
    """
    if limit is None:
        limit = settings.search.default_limit

    kb_ctx: KnowledgeBaseContext = ctx.deps
    logger.info(f"Knowledge base search for tenant {kb_ctx.tenant_id}: '{query[:50]}'")

    try:
        results = await kb_ctx.engine.search(
            kb_ctx.tenant_id, query, limit=limit, rerank=kb_ctx.rerank
        )

        if not results:
            logger.warning("No chunks found matching similarity threshold")
            kb_ctx.last_search_sources = []
            return NO_RESULTS_MESSAGE

        response_parts = []
        sources_tracked = []

        for index, chunk in enumerate(results):
            relevance = chunk.rerank_score if chunk.rerank_score is not None else chunk.similarity
            filename = chunk.filename or "unknown"

            sources_tracked.append(
                {
                    "filename": filename,
                    "document_id": chunk.document_id,
                    "similarity": chunk.similarity,
                    "rerank_score": chunk.rerank_score,
                    "content": chunk.text,
                }
            )

            confidence_marker = " - LOW" if relevance < LOW_CONFIDENCE_THRESHOLD else ""
            response_parts.append(
                f'[{index + 1}] Source: "{filename}" '
                f"(Relevance: {int(relevance * 100)}%{confidence_marker})\n{chunk.text}\n"
            )

        kb_ctx.last_search_sources = sources_tracked

        formatted_response = (
            f"Found {len(response_parts)} relevant results (sorted by relevance):\n\n"
            + "\n---\n".join(response_parts)
        )
        logger.info(f"Search response: {len(formatted_response)} chars, {len(response_parts)} sources")

        return formatted_response

    except Exception as e:
        logger.error(f"Knowledge base search failed: {e}", exc_info=True)
        return f"ERROR: The knowledge base search failed: {str(e)}"
