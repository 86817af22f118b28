"""
Knowledge base service: the facade used by the API, the CLI and the agent.

Upload flow:
    validate -> checksum -> store blob -> create document (uploaded)
    -> mark processing -> supersede older copies -> schedule background
    extraction and embedding -> return immediately

Background failures are never raised to the uploader; they are recorded on
the document and observed by polling its status.
"""

import asyncio
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set

from .errors import DocumentNotFound
from .ingestion.embedder import EmbeddingGenerator
from .ingestion.models import (
    Document,
    DocumentStatus,
    EmbeddingConfig,
    RankedChunk,
    UploadResult,
)
from .ingestion.persistence.blob_storage import (
    BlobStorage,
    SupabaseBlobStorage,
    build_storage_path,
)
from .ingestion.persistence.document_store import DocumentStore, SupabaseDocumentStore
from .ingestion.pipeline import EmbeddingBatchPipeline
from .ingestion.processor import DocumentProcessor
from .retrieval.engine import RetrievalEngine
from .retrieval.reranker import Reranker, get_reranker
from .tenant_config import StaticTenantConfig, TenantConfigProvider
from .utils.supabase_client import SupabaseRestClient

logger = logging.getLogger(__name__)

UPLOAD_MESSAGE = "Document uploaded successfully and is being processed"
DUPLICATE_MESSAGE = "An identical document was uploaded concurrently; keeping the newer upload"


class KnowledgeBaseService:
    """Per-tenant document ingestion and retrieval."""

    def __init__(
        self,
        store: DocumentStore,
        blob_storage: BlobStorage,
        processor: DocumentProcessor,
        embedder: EmbeddingGenerator,
        tenant_config: Optional[TenantConfigProvider] = None,
        reranker: Optional[Reranker] = None,
        pipeline: Optional[EmbeddingBatchPipeline] = None,
        engine: Optional[RetrievalEngine] = None,
    ):
        """
        Initialize service.

        Args:
            store: Document and chunk persistence
            blob_storage: Storage for original uploads
            processor: Validation and extraction
            embedder: Embedding generator shared by ingestion and search
            tenant_config: Tenant defaults (settings-backed if None)
            reranker: LLM reranker for search (reranking unavailable if None)
            pipeline: Embedding batch pipeline (built from the above if None)
            engine: Retrieval engine (built from the above if None)
        """
        self.store = store
        self.blob_storage = blob_storage
        self.processor = processor
        self.tenant_config = tenant_config or StaticTenantConfig()
        self.pipeline = pipeline or EmbeddingBatchPipeline(
            store, embedder, count_tokens=processor.count_tokens
        )
        self.engine = engine or RetrievalEngine(
            store, embedder, self.tenant_config, reranker=reranker
        )
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, rest_client: Optional[SupabaseRestClient] = None) -> "KnowledgeBaseService":
        """Build a service wired to Supabase and the configured providers."""
        rest_client = rest_client or SupabaseRestClient()
        return cls(
            store=SupabaseDocumentStore(rest_client),
            blob_storage=SupabaseBlobStorage(rest_client),
            processor=DocumentProcessor(),
            embedder=EmbeddingGenerator(),
            reranker=get_reranker(),
        )

    # ------------------------------------------------------------------ upload

    async def upload_document(
        self,
        tenant_id: str,
        filename: str,
        content: bytes,
        content_type: str,
        strategy: Optional[Mapping[str, Any]] = None,
        embedding_config: Optional[EmbeddingConfig] = None,
    ) -> UploadResult:
        """
        Accept an upload and schedule its ingestion.

        Args:
            tenant_id: Owning tenant
            filename: Original filename
            content: Raw file bytes
            content_type: Declared MIME type
            strategy: Chunking overrides (tenant default if None)
            embedding_config: Embedding config (tenant default if None)

        Returns:
            UploadResult with status ``processing``

        Raises:
            FileTooLarge: If content exceeds the size limit
            UnsupportedFormat: If content_type is not supported
        """
        self.processor.validate_file(content, content_type)
        checksum = self.processor.calculate_checksum(content)

        extension = self.processor.extension_for(content_type) or os.path.splitext(filename)[1]
        storage_path = await self.blob_storage.put(
            build_storage_path(tenant_id, extension), content, content_type
        )

        document = Document(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            filename=filename,
            content_type=content_type,
            size=len(content),
            storage_path=storage_path,
            checksum=checksum,
            status=DocumentStatus.UPLOADED,
        )

        try:
            document = await self.store.create_document(document)
        except Exception:
            await self._delete_blob_quietly(storage_path)
            raise

        await self.store.update_status(document.id, DocumentStatus.PROCESSING)

        survivor = await self._supersede_older_copies(document)
        if survivor.id != document.id:
            logger.info(f"Identical upload {survivor.id} is newer, dropping {document.id}")
            await self._remove_document_quietly(document)
            return UploadResult(
                id=survivor.id,
                filename=survivor.filename,
                size=survivor.size,
                status=survivor.status,
                message=DUPLICATE_MESSAGE,
            )

        if strategy is None:
            strategy = await self.tenant_config.get_chunking_strategy(tenant_id)
        if embedding_config is None:
            embedding_config = await self.tenant_config.get_embedding_config(tenant_id)

        task = asyncio.create_task(
            self._process_document(document, content, strategy, embedding_config)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"Accepted {filename} ({len(content)} bytes) for tenant {tenant_id}: {document.id}")

        return UploadResult(
            id=document.id,
            filename=filename,
            size=len(content),
            status=DocumentStatus.PROCESSING,
            message=UPLOAD_MESSAGE,
        )

    async def _supersede_older_copies(self, document: Document) -> Document:
        """Delete the tenant's other documents with the same checksum.

        The newest document by (created_at, id) survives. Every uploader applies
        the same rule after inserting its own row, so concurrent uploads of the
        same file converge on a single live document. Documents other than
        ``document`` are removed here; if ``document`` itself is not the newest
        the caller removes it.

        Returns:
            The surviving document
        """
        try:
            same_checksum = await self.store.find_by_checksum(document.tenant_id, document.checksum)
        except Exception as e:
            logger.error(f"Checksum lookup failed for {document.id}: {e}")
            return document

        candidates = {existing.id: existing for existing in same_checksum}
        candidates[document.id] = document
        survivor = max(candidates.values(), key=lambda d: (d.created_at, d.id))

        for existing in candidates.values():
            if existing.id in (survivor.id, document.id):
                continue
            logger.info(f"Document {existing.id} superseded by re-upload {survivor.id}")
            await self._remove_document_quietly(existing)

        return survivor

    async def _process_document(
        self,
        document: Document,
        content: bytes,
        strategy: Optional[Mapping[str, Any]],
        embedding_config: EmbeddingConfig,
    ) -> None:
        """Extract and embed a document in the background."""
        try:
            # Parsing is CPU bound; keep it off the event loop
            result = await asyncio.to_thread(
                self.processor.process_document,
                content,
                document.content_type,
                document.filename,
                strategy,
            )

            base_metadata: Dict[str, Any] = {
                "filename": document.filename,
                "content_type": document.content_type,
                "file_type": result.file_type,
                "extracted_at": datetime.now(timezone.utc).isoformat(),
            }

            await self.pipeline.run(
                document.id, document.tenant_id, result.chunks, embedding_config, base_metadata
            )

        except Exception as e:
            logger.error(f"Failed to process document {document.id}: {e}", exc_info=True)
            try:
                await self.store.update_status(document.id, DocumentStatus.ERROR, str(e))
            except Exception as status_error:
                logger.error(f"Could not record failure on {document.id}: {status_error}")

    async def drain(self) -> None:
        """Wait for every in-flight background ingestion to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --------------------------------------------------------------- documents

    async def get_document_status(self, tenant_id: str, document_id: str) -> Document:
        """
        Raises:
            DocumentNotFound: If the document is missing or owned by another tenant
        """
        document = await self.store.get_document(document_id)
        if document is None or document.tenant_id != tenant_id:
            raise DocumentNotFound(document_id)
        return document

    async def list_documents(self, tenant_id: str) -> List[Document]:
        return await self.store.list_documents(tenant_id)

    async def delete_document(self, tenant_id: str, document_id: str) -> None:
        """
        Delete a document, its chunks and its stored file.

        Blob removal is best effort; the database delete is not.

        Raises:
            DocumentNotFound: If the document is missing or owned by another tenant
        """
        document = await self.get_document_status(tenant_id, document_id)
        await self._delete_blob_quietly(document.storage_path)
        await self.store.delete_document(document.id)
        logger.info(f"Deleted document {document.id} for tenant {tenant_id}")

    async def _remove_document_quietly(self, document: Document) -> bool:
        await self._delete_blob_quietly(document.storage_path)
        try:
            await self.store.delete_document(document.id)
            return True
        except Exception as e:
            logger.error(f"Failed to delete document {document.id}: {e}")
            return False

    async def _delete_blob_quietly(self, storage_path: str) -> bool:
        try:
            await self.blob_storage.delete(storage_path)
            return True
        except Exception as e:
            logger.error(f"Failed to delete {storage_path} from storage: {e}")
            return False

    # ------------------------------------------------------------------ search

    async def search(
        self,
        tenant_id: str,
        query: str,
        limit: Optional[int] = None,
        rerank: Optional[bool] = None,
        embedding_config: Optional[EmbeddingConfig] = None,
    ) -> List[RankedChunk]:
        return await self.engine.search(
            tenant_id, query, limit=limit, embedding_config=embedding_config, rerank=rerank
        )

    def get_supported_types(self) -> List[Dict[str, str]]:
        return self.processor.get_supported_types()
