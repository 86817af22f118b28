"""
Document and chunk persistence.

Handles:
- Document lifecycle records (status, progress, errors)
- Chunk storage with embeddings (pgvector format)
- Checksum lookups for re-upload deduplication
- Tenant-scoped similarity search via an RPC function
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...config import settings
from ...utils.supabase_client import SupabaseRestClient, to_pgvector
from ..models import (
    Document,
    DocumentStatus,
    EmbeddingConfig,
    RankedChunk,
    StoredChunk,
    progress_percent,
)

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Persistence interface used by the ingestion pipeline and retrieval engine."""

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def list_documents(self, tenant_id: str) -> List[Document]:
        """Tenant's documents, newest first."""
        pass

    @abstractmethod
    async def find_by_checksum(self, tenant_id: str, checksum: str) -> List[Document]:
        """Tenant's documents with the given checksum, oldest first."""
        pass

    @abstractmethod
    async def update_status(
        self, document_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    async def update_progress(
        self, document_id: str, processed_chunks: int, total_chunks: int
    ) -> None:
        pass

    @abstractmethod
    async def insert_chunks(self, chunks: List[StoredChunk]) -> None:
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete a document and, by cascade, its chunks."""
        pass

    @abstractmethod
    async def similarity_search(
        self, tenant_id: str, embedding: List[float], threshold: float, limit: int
    ) -> List[RankedChunk]:
        """Tenant's chunks from ready documents, most similar first."""
        pass

    @abstractmethod
    async def get_embedding_configs(self, tenant_id: str) -> List[EmbeddingConfig]:
        """Distinct embedding configs recorded on the tenant's stored chunks."""
        pass


def _parse_metadata(value: Any) -> Dict[str, Any]:
    # Older rows may hold metadata as a JSON string
    if isinstance(value, str):
        try:
            return json.loads(value) if value else {}
        except ValueError:
            return {}
    return value or {}


class SupabaseDocumentStore(DocumentStore):
    """Document store backed by Supabase tables and pgvector RPC functions."""

    def __init__(
        self,
        rest_client: SupabaseRestClient,
        documents_table: Optional[str] = None,
        chunks_table: Optional[str] = None,
        match_function: Optional[str] = None,
    ):
        """
        Initialize persistence handler.

        Args:
            rest_client: SupabaseRestClient instance
            documents_table: Document table name (default from settings)
            chunks_table: Chunk table name (default from settings)
            match_function: Similarity search RPC name (default from settings)
        """
        self.rest_client = rest_client
        self.documents_table = documents_table or settings.storage.documents_table
        self.chunks_table = chunks_table or settings.storage.chunks_table
        self.match_function = match_function or settings.storage.match_function

    async def create_document(self, document: Document) -> Document:
        try:
            response = (
                self.rest_client.table(self.documents_table)
                .insert(document.model_dump(mode="json"))
                .execute()
            )
            logger.debug(f"Inserted document: {document.filename} ({document.id})")
            return Document.model_validate(response.data[0]) if response.data else document
        except Exception as e:
            logger.error(f"Error inserting document {document.filename}: {e}")
            raise

    async def get_document(self, document_id: str) -> Optional[Document]:
        response = (
            self.rest_client.table(self.documents_table)
            .select("*")
            .eq("id", document_id)
            .limit(1)
            .execute()
        )
        return Document.model_validate(response.data[0]) if response.data else None

    async def list_documents(self, tenant_id: str) -> List[Document]:
        response = (
            self.rest_client.table(self.documents_table)
            .select("*")
            .eq("tenant_id", tenant_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [Document.model_validate(row) for row in response.data]

    async def find_by_checksum(self, tenant_id: str, checksum: str) -> List[Document]:
        response = (
            self.rest_client.table(self.documents_table)
            .select("*")
            .eq("tenant_id", tenant_id)
            .eq("checksum", checksum)
            .order("created_at")
            .order("id")
            .execute()
        )
        return [Document.model_validate(row) for row in response.data]

    async def update_status(
        self, document_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        try:
            self.rest_client.table(self.documents_table).update(
                {
                    "status": DocumentStatus(status).value,
                    "error_message": error_message,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            ).eq("id", document_id).execute()
            logger.debug(f"Document {document_id} -> {DocumentStatus(status).value}")
        except Exception as e:
            logger.error(f"Error updating status of {document_id}: {e}")
            raise

    async def update_progress(
        self, document_id: str, processed_chunks: int, total_chunks: int
    ) -> None:
        self.rest_client.table(self.documents_table).update(
            {
                "processed_chunks": processed_chunks,
                "total_chunks": total_chunks,
                "processing_progress": progress_percent(processed_chunks, total_chunks),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
        ).eq("id", document_id).execute()

    async def insert_chunks(self, chunks: List[StoredChunk]) -> None:
        """
        Insert multiple chunks in a single request for better performance.

        Args:
            chunks: Embedded chunks to persist
        """
        if not chunks:
            return

        rows = []
        for chunk in chunks:
            row = chunk.model_dump(mode="json")
            row["embedding"] = to_pgvector(chunk.embedding)
            rows.append(row)

        try:
            self.rest_client.table(self.chunks_table).insert(rows).execute()
            logger.info(f"Inserted batch of {len(rows)} chunks")
        except Exception as e:
            logger.error(f"Error inserting chunk batch: {e}")
            raise

    async def delete_document(self, document_id: str) -> None:
        try:
            self.rest_client.table(self.documents_table).delete().eq("id", document_id).execute()
            logger.info(f"Deleted document {document_id}")
        except Exception as e:
            logger.error(f"Error deleting document {document_id}: {e}")
            raise

    async def similarity_search(
        self, tenant_id: str, embedding: List[float], threshold: float, limit: int
    ) -> List[RankedChunk]:
        """
        Vector similarity search via Supabase RPC function.

        The threshold is passed to PostgreSQL for server-side filtering.
        """
        rows = await self.rest_client.execute_rpc(
            self.match_function,
            {
                "query_embedding": to_pgvector(embedding),
                "match_threshold": threshold,
                "match_count": limit,
                "p_tenant_id": tenant_id,
            },
        )

        logger.debug(f"Similarity search: {len(rows or [])} results above threshold {threshold}")

        return [
            RankedChunk(
                text=row["text"],
                similarity=row["similarity"],
                filename=row.get("filename"),
                document_id=row.get("document_id"),
                metadata=_parse_metadata(row.get("metadata")),
            )
            for row in rows or []
        ]

    async def get_embedding_configs(self, tenant_id: str) -> List[EmbeddingConfig]:
        rows = await self.rest_client.execute_rpc(
            "kb_embedding_configs", {"p_tenant_id": tenant_id}
        )

        configs = []
        for row in rows or []:
            if row.get("embedding_model") and row.get("embedding_dimensions"):
                configs.append(
                    EmbeddingConfig.model_construct(
                        model=row["embedding_model"],
                        dimensions=int(row["embedding_dimensions"]),
                    )
                )
        return configs
