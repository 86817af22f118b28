"""
Pytest configuration and shared fixtures.

Supabase and the embedding provider are replaced by in-memory fakes so the
whole upload -> extract -> embed -> search flow runs offline.
"""

import math
import re
import zlib
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from knowledge_base.ingestion.embedder import EmbeddingGenerator
from knowledge_base.ingestion.models import (
    Document,
    DocumentStatus,
    EmbeddingConfig,
    RankedChunk,
    StoredChunk,
    progress_percent,
)
from knowledge_base.ingestion.persistence.blob_storage import BlobStorage
from knowledge_base.ingestion.persistence.document_store import DocumentStore
from knowledge_base.ingestion.pipeline import EmbeddingBatchPipeline
from knowledge_base.ingestion.processor import DocumentProcessor
from knowledge_base.ingestion.tokenizer import approximate_token_count
from knowledge_base.retrieval.engine import RetrievalEngine
from knowledge_base.service import KnowledgeBaseService
from knowledge_base.tenant_config import StaticTenantConfig

_WORD = re.compile(r"[a-z0-9]+")


@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "test-service-key")


# =============================================================================
# Fakes
# =============================================================================


def bag_of_words_vector(text: str, dimensions: int) -> List[float]:
    """Deterministic unit vector: hashed word counts.

    Identical word bags embed identically, so a query equal to a chunk's text
    scores a cosine similarity of 1.0 against it.
    """
    vector = [0.0] * dimensions
    for word in _WORD.findall(text.lower()):
        vector[zlib.crc32(word.encode()) % dimensions] += 1.0

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


def cosine_similarity(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeEmbeddings:
    """Stands in for ``AsyncOpenAI().embeddings``."""

    NATIVE_DIMENSIONS = 1536

    def __init__(self):
        self.calls: List[dict] = []

    async def create(self, model: str, input: str, dimensions: Optional[int] = None):
        self.calls.append({"model": model, "input": input, "dimensions": dimensions})
        vector = bag_of_words_vector(input, dimensions or self.NATIVE_DIMENSIONS)
        return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])


class FakeEmbeddingClient:
    def __init__(self):
        self.embeddings = FakeEmbeddings()


class InMemoryDocumentStore(DocumentStore):
    """Document store with the same semantics as the Supabase tables and RPCs."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.chunks: List[StoredChunk] = []
        self.status_history: Dict[str, List[DocumentStatus]] = {}

    async def create_document(self, document: Document) -> Document:
        self.documents[document.id] = document.model_copy()
        self.status_history[document.id] = [document.status]
        return document.model_copy()

    async def get_document(self, document_id: str) -> Optional[Document]:
        document = self.documents.get(document_id)
        return document.model_copy() if document else None

    async def list_documents(self, tenant_id: str) -> List[Document]:
        owned = [d for d in self.documents.values() if d.tenant_id == tenant_id]
        return sorted(owned, key=lambda d: d.created_at, reverse=True)

    async def find_by_checksum(self, tenant_id: str, checksum: str) -> List[Document]:
        matches = [
            d
            for d in self.documents.values()
            if d.tenant_id == tenant_id and d.checksum == checksum
        ]
        return sorted(matches, key=lambda d: (d.created_at, d.id))

    async def update_status(
        self, document_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        document = self.documents.get(document_id)
        if document is None:
            return
        document.status = DocumentStatus(status)
        document.error_message = error_message
        document.updated_at = datetime.now(timezone.utc)
        self.status_history[document_id].append(document.status)

    async def update_progress(
        self, document_id: str, processed_chunks: int, total_chunks: int
    ) -> None:
        document = self.documents.get(document_id)
        if document is None:
            return
        document.processed_chunks = processed_chunks
        document.total_chunks = total_chunks
        document.processing_progress = progress_percent(processed_chunks, total_chunks)

    async def insert_chunks(self, chunks: List[StoredChunk]) -> None:
        for chunk in chunks:
            if chunk.document_id not in self.documents:
                raise ValueError(f"foreign key violation: document {chunk.document_id}")
        self.chunks.extend(chunks)

    async def delete_document(self, document_id: str) -> None:
        self.documents.pop(document_id, None)
        self.chunks = [c for c in self.chunks if c.document_id != document_id]

    async def similarity_search(
        self, tenant_id: str, embedding: List[float], threshold: float, limit: int
    ) -> List[RankedChunk]:
        results = []
        for chunk in self.chunks:
            document = self.documents.get(chunk.document_id)
            if (
                chunk.tenant_id != tenant_id
                or document is None
                or document.status != DocumentStatus.READY
                or len(chunk.embedding) != len(embedding)
            ):
                continue
            similarity = cosine_similarity(chunk.embedding, embedding)
            if similarity > threshold:
                results.append(
                    RankedChunk(
                        text=chunk.text,
                        similarity=similarity,
                        filename=document.filename,
                        document_id=chunk.document_id,
                        metadata=chunk.metadata,
                    )
                )
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:limit]

    async def get_embedding_configs(self, tenant_id: str) -> List[EmbeddingConfig]:
        seen = {}
        for chunk in self.chunks:
            if chunk.tenant_id != tenant_id:
                continue
            key = (chunk.metadata["embedding_model"], chunk.metadata["embedding_dimensions"])
            seen[key] = EmbeddingConfig.model_construct(model=key[0], dimensions=key[1])
        return list(seen.values())

    def chunks_for(self, document_id: str) -> List[StoredChunk]:
        return sorted(
            (c for c in self.chunks if c.document_id == document_id),
            key=lambda c: c.chunk_index,
        )


class InMemoryBlobStorage(BlobStorage):
    def __init__(self):
        self.files: Dict[str, bytes] = {}

    async def put(self, path: str, content: bytes, content_type: str) -> str:
        self.files[path] = content
        return path

    async def get(self, path: str) -> bytes:
        return self.files[path]

    async def delete(self, path: str) -> None:
        self.files.pop(path, None)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def embedding_config():
    """Small vectors keep the fakes fast."""
    return EmbeddingConfig(model="text-embedding-3-small", dimensions=256)


@pytest.fixture
def processor():
    return DocumentProcessor(count_tokens=approximate_token_count, max_file_size_mb=10)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def blob_storage():
    return InMemoryBlobStorage()


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def embedder(embedding_client):
    return EmbeddingGenerator(client=embedding_client, max_retries=3, retry_delay=0)


@pytest.fixture
def tenant_config(embedding_config):
    return StaticTenantConfig(embedding_config=embedding_config)


@pytest.fixture
def pipeline(store, embedder):
    return EmbeddingBatchPipeline(
        store, embedder, count_tokens=approximate_token_count, batch_size=2, batch_delay=0
    )


@pytest.fixture
def engine(store, embedder, tenant_config):
    return RetrievalEngine(store, embedder, tenant_config, similarity_threshold=0.5)


@pytest.fixture
def service(store, blob_storage, processor, embedder, tenant_config, pipeline, engine):
    return KnowledgeBaseService(
        store=store,
        blob_storage=blob_storage,
        processor=processor,
        embedder=embedder,
        tenant_config=tenant_config,
        pipeline=pipeline,
        engine=engine,
    )


@pytest.fixture
def sample_text():
    """Sample text for chunking tests."""
    return (
        "Our refund policy allows returns within thirty days of purchase. "
        "Items must be unused and in their original packaging.\n\n"
        "Shipping is free for orders above fifty euros. "
        "Express delivery is available in most regions for an extra fee.\n\n"
        "Support is reachable by email from Monday to Friday."
    )
