"""
Embedding batch pipeline.

Embeds a document's chunks in fixed-size batches: chunks within a batch are
embedded concurrently, batches run one after another with a short pause, and
progress is persisted after every batch. The first chunk that cannot be
embedded stops the run and moves the document to ``error``; batches that
completed before it stay stored.

A batch is inserted only when every chunk in it was embedded. Chunks of the
failing batch that did get a vector are discarded with it, so the stored
chunks of a failed document are always a gap-free prefix ``0..n-1`` and
``processed_chunks`` equals their count. The cost is re-embedding those
siblings if the document is uploaded again.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from ..config import settings
from .embedder import EmbeddingGenerator
from .models import DocumentStatus, EmbeddingConfig, ProcessedChunk, StoredChunk
from .persistence.document_store import DocumentStore
from .tokenizer import TokenCounter, approximate_token_count

logger = logging.getLogger(__name__)


class EmbeddingBatchPipeline:
    """Embeds and persists chunks, tracking progress on the document."""

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingGenerator,
        count_tokens: TokenCounter = approximate_token_count,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        """
        Initialize pipeline.

        Args:
            store: Document store receiving chunks and progress
            embedder: Embedding generator (handles per-chunk retry)
            count_tokens: Token counter shared with chunking
            batch_size: Chunks embedded concurrently (default from settings)
            batch_delay: Pause between batches in seconds (default from settings)
        """
        self.store = store
        self.embedder = embedder
        self.count_tokens = count_tokens
        self.batch_size = max(
            batch_size if batch_size is not None else settings.embedding.batch_size, 1
        )
        self.batch_delay = (
            batch_delay if batch_delay is not None else settings.embedding.batch_delay
        )

    async def run(
        self,
        document_id: str,
        tenant_id: str,
        chunks: List[ProcessedChunk],
        embedding_config: EmbeddingConfig,
        base_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Embed and store all chunks of a document.

        Args:
            document_id: Document being ingested
            tenant_id: Owning tenant
            chunks: Extractor output, in document order
            embedding_config: Model and dimensions for every chunk
            base_metadata: Metadata merged into every chunk (filename, content type...)

        Returns:
            True if the document reached ``ready``, False if it was marked ``error``
        """
        total = len(chunks)
        processed = 0
        total_batches = (total + self.batch_size - 1) // self.batch_size

        logger.info(
            f"Embedding {total} chunks for document {document_id} "
            f"with {embedding_config.model} ({embedding_config.dimensions}d)"
        )

        try:
            await self.store.update_progress(document_id, 0, total)

            for batch_number, start in enumerate(range(0, total, self.batch_size), start=1):
                batch = chunks[start : start + self.batch_size]

                results = await asyncio.gather(
                    *[
                        self._embed_chunk(
                            chunk, start + offset, document_id, tenant_id,
                            embedding_config, base_metadata,
                        )
                        for offset, chunk in enumerate(batch)
                    ],
                    return_exceptions=True,
                )

                failure = next((r for r in results if isinstance(r, BaseException)), None)
                if failure is not None:
                    logger.error(
                        f"Batch {batch_number}/{total_batches} of document {document_id} failed: "
                        f"{failure}"
                    )
                    await self.store.update_status(document_id, DocumentStatus.ERROR, str(failure))
                    return False

                await self.store.insert_chunks(results)
                processed += len(results)
                await self.store.update_progress(document_id, processed, total)

                logger.info(f"Processed batch {batch_number}/{total_batches} ({processed}/{total})")

                if batch_number < total_batches and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)

            await self.store.update_status(document_id, DocumentStatus.READY)

        except Exception as e:
            logger.error(f"Embedding pipeline failed for {document_id}: {e}", exc_info=True)
            await self.store.update_status(document_id, DocumentStatus.ERROR, str(e))
            return False

        logger.info(f"Document {document_id} ready with {processed} chunks")
        return True

    async def _embed_chunk(
        self,
        chunk: ProcessedChunk,
        chunk_index: int,
        document_id: str,
        tenant_id: str,
        embedding_config: EmbeddingConfig,
        base_metadata: Optional[Dict[str, Any]],
    ) -> StoredChunk:
        embedding = await self.embedder.generate_embedding(
            chunk.text, embedding_config, chunk_index=chunk_index
        )

        return StoredChunk(
            id=str(uuid.uuid4()),
            document_id=document_id,
            tenant_id=tenant_id,
            chunk_index=chunk_index,
            text=chunk.text,
            token_count=self.count_tokens(chunk.text),
            embedding=embedding,
            metadata={
                **(base_metadata or {}),
                **chunk.metadata,
                "embedding_model": embedding_config.model,
                "embedding_dimensions": embedding_config.dimensions,
            },
        )
