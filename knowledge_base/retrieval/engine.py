"""
Retrieval engine: tenant-scoped vector search with optional LLM reranking.

The query must be embedded with the same model and dimensions as the stored
chunks. The config is resolved in order:

1. the caller's explicit config
2. the single config recorded on the tenant's stored chunks
3. the tenant default from the TenantConfigProvider

A config whose dimensionality does not match the stored chunks is rejected.
Search never raises: failures are logged and produce an empty result.
"""

import logging
from typing import List, Optional

from ..config import settings
from ..errors import EmbeddingConfigMismatch
from ..ingestion.embedder import EmbeddingGenerator
from ..ingestion.models import EmbeddingConfig, RankedChunk
from ..ingestion.persistence.document_store import DocumentStore
from ..tenant_config import TenantConfigProvider
from .reranker import Reranker

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Answers similarity queries over a tenant's ready documents."""

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingGenerator,
        tenant_config: TenantConfigProvider,
        reranker: Optional[Reranker] = None,
        similarity_threshold: Optional[float] = None,
        candidate_multiplier: Optional[int] = None,
    ):
        """
        Args:
            store: Document store with the tenant's chunks
            embedder: Embedding generator for queries
            tenant_config: Source of tenant default embedding configs
            reranker: LLM reranker (reranking unavailable if None)
            similarity_threshold: Results must score strictly above this (default from settings)
            candidate_multiplier: Candidates fetched per result when reranking (default from settings)
        """
        self.store = store
        self.embedder = embedder
        self.tenant_config = tenant_config
        self.reranker = reranker
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.search.similarity_threshold
        )
        self.candidate_multiplier = max(
            candidate_multiplier or settings.rerank.candidate_multiplier, 1
        )

    async def resolve_embedding_config(
        self, tenant_id: str, embedding_config: Optional[EmbeddingConfig] = None
    ) -> EmbeddingConfig:
        """
        Pick the embedding config for a tenant's queries.

        Raises:
            EmbeddingConfigMismatch: If the config's dimensions differ from the stored chunks
        """
        stored = await self.store.get_embedding_configs(tenant_id)

        if embedding_config is not None:
            config = embedding_config
        elif len(stored) == 1:
            config = stored[0]
        else:
            if len(stored) > 1:
                logger.warning(
                    f"Tenant {tenant_id} has chunks from {len(stored)} embedding configs, "
                    "using tenant default"
                )
            config = await self.tenant_config.get_embedding_config(tenant_id)

        stored_dimensions = sorted({c.dimensions for c in stored})
        if stored_dimensions and config.dimensions not in stored_dimensions:
            raise EmbeddingConfigMismatch(config.dimensions, stored_dimensions)

        return config

    async def search(
        self,
        tenant_id: str,
        query: str,
        limit: Optional[int] = None,
        embedding_config: Optional[EmbeddingConfig] = None,
        rerank: Optional[bool] = None,
    ) -> List[RankedChunk]:
        """
        Search a tenant's knowledge base.

        Args:
            tenant_id: Tenant whose chunks are searched
            query: Natural-language query
            limit: Maximum results (default from settings)
            embedding_config: Explicit query embedding config
            rerank: Rerank candidates with the LLM (default from settings)

        Returns:
            Chunks above the similarity threshold, best first; empty on any failure
        """
        if limit is None:
            limit = settings.search.default_limit
        limit = min(limit, settings.search.max_limit)

        if limit <= 0 or not query or not query.strip():
            return []

        use_rerank = (rerank if rerank is not None else settings.rerank.enabled) and (
            self.reranker is not None
        )
        candidate_count = limit * self.candidate_multiplier if use_rerank else limit

        try:
            config = await self.resolve_embedding_config(tenant_id, embedding_config)
            query_embedding = await self.embedder.embed_query(query, config)

            results = await self.store.similarity_search(
                tenant_id, query_embedding, self.similarity_threshold, candidate_count
            )

            results = sorted(
                (r for r in results if r.similarity > self.similarity_threshold),
                key=lambda r: r.similarity,
                reverse=True,
            )[:candidate_count]

            logger.info(
                f"Search for tenant {tenant_id}: {len(results)} chunks above "
                f"{self.similarity_threshold}"
            )

            if use_rerank:
                return await self.reranker.rerank(query, results, top_k=limit)

            return results[:limit]

        except Exception as e:
            logger.error(f"Knowledge base search failed for tenant {tenant_id}: {e}", exc_info=True)
            return []
