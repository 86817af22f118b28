"""Tests for the Supabase-backed document store and blob storage."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from knowledge_base.ingestion.models import Document, DocumentStatus, StoredChunk
from knowledge_base.ingestion.persistence.blob_storage import (
    SupabaseBlobStorage,
    build_storage_path,
)
from knowledge_base.ingestion.persistence.document_store import SupabaseDocumentStore
from knowledge_base.utils.supabase_client import to_pgvector


@pytest.fixture
def rest_client():
    client = MagicMock()
    client.execute_rpc = AsyncMock(return_value=[])
    return client


@pytest.fixture
def supabase_store(rest_client):
    return SupabaseDocumentStore(
        rest_client,
        documents_table="kb_documents",
        chunks_table="kb_chunks",
        match_function="match_kb_chunks",
    )


def _document(**overrides):
    fields = dict(
        id="doc-1",
        tenant_id="tenant-a",
        filename="faq.txt",
        content_type="text/plain",
        size=10,
        storage_path="tenant-a/1-abc.txt",
        checksum="abc",
    )
    fields.update(overrides)
    return Document(**fields)


class TestToPgvector:
    def test_literal_format(self):
        assert to_pgvector([0.1, -2.0, 3]) == "[0.1,-2.0,3]"


class TestSupabaseDocumentStore:
    @pytest.mark.asyncio
    async def test_similarity_search_passes_tenant_and_threshold(self, supabase_store, rest_client):
        rest_client.execute_rpc.return_value = [
            {
                "text": "Refunds within thirty days",
                "similarity": 0.82,
                "filename": "faq.txt",
                "document_id": "doc-1",
                "metadata": '{"chunk_index": 0}',
            }
        ]

        results = await supabase_store.similarity_search("tenant-a", [0.5, 0.25], 0.5, 4)

        rest_client.execute_rpc.assert_awaited_once_with(
            "match_kb_chunks",
            {
                "query_embedding": "[0.5,0.25]",
                "match_threshold": 0.5,
                "match_count": 4,
                "p_tenant_id": "tenant-a",
            },
        )
        assert len(results) == 1
        assert results[0].similarity == 0.82
        assert results[0].metadata == {"chunk_index": 0}

    @pytest.mark.asyncio
    async def test_insert_chunks_serializes_embeddings(self, supabase_store, rest_client):
        chunk = StoredChunk(
            id="chunk-1",
            document_id="doc-1",
            tenant_id="tenant-a",
            chunk_index=0,
            text="hello",
            token_count=1,
            embedding=[1.0, 0.0],
            metadata={"embedding_model": "text-embedding-3-small"},
        )

        await supabase_store.insert_chunks([chunk])

        rest_client.table.assert_called_with("kb_chunks")
        rows = rest_client.table.return_value.insert.call_args.args[0]
        assert rows[0]["embedding"] == "[1.0,0.0]"
        assert rows[0]["document_id"] == "doc-1"

    @pytest.mark.asyncio
    async def test_insert_nothing_skips_request(self, supabase_store, rest_client):
        await supabase_store.insert_chunks([])

        rest_client.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_document_returns_stored_row(self, supabase_store, rest_client):
        document = _document()
        stored = document.model_dump(mode="json")
        rest_client.table.return_value.insert.return_value.execute.return_value = MagicMock(
            data=[stored]
        )

        created = await supabase_store.create_document(document)

        assert created.id == "doc-1"
        assert created.status == DocumentStatus.UPLOADED
        payload = rest_client.table.return_value.insert.call_args.args[0]
        assert payload["tenant_id"] == "tenant-a"
        assert payload["status"] == "uploaded"

    @pytest.mark.asyncio
    async def test_update_status_writes_value(self, supabase_store, rest_client):
        await supabase_store.update_status("doc-1", DocumentStatus.ERROR, "boom")

        update = rest_client.table.return_value.update.call_args.args[0]
        assert update["status"] == "error"
        assert update["error_message"] == "boom"
        rest_client.table.return_value.update.return_value.eq.assert_called_with("id", "doc-1")

    @pytest.mark.asyncio
    async def test_update_progress_computes_percentage(self, supabase_store, rest_client):
        await supabase_store.update_progress("doc-1", 1, 4)

        update = rest_client.table.return_value.update.call_args.args[0]
        assert update["processing_progress"] == 25

    @pytest.mark.asyncio
    async def test_delete_failure_propagates(self, supabase_store, rest_client):
        rest_client.table.return_value.delete.return_value.eq.return_value.execute.side_effect = (
            RuntimeError("connection reset")
        )

        with pytest.raises(RuntimeError):
            await supabase_store.delete_document("doc-1")

    @pytest.mark.asyncio
    async def test_embedding_configs_skip_incomplete_rows(self, supabase_store, rest_client):
        rest_client.execute_rpc.return_value = [
            {"embedding_model": "text-embedding-3-small", "embedding_dimensions": 1536},
            {"embedding_model": None, "embedding_dimensions": None},
        ]

        configs = await supabase_store.get_embedding_configs("tenant-a")

        assert [(c.model, c.dimensions) for c in configs] == [("text-embedding-3-small", 1536)]


class TestBlobStorage:
    def test_storage_path_is_tenant_scoped(self):
        path = build_storage_path("tenant-a", "pdf")

        assert path.startswith("tenant-a/")
        assert path.endswith(".pdf")
        assert path != build_storage_path("tenant-a", "pdf")

    @pytest.mark.asyncio
    async def test_delegates_to_bucket(self):
        rest_client = MagicMock()
        rest_client.upload_file = AsyncMock(return_value="tenant-a/x.txt")
        rest_client.remove_file = AsyncMock()
        storage = SupabaseBlobStorage(rest_client, bucket="documents")

        assert await storage.put("tenant-a/x.txt", b"hi", "text/plain") == "tenant-a/x.txt"
        await storage.delete("tenant-a/x.txt")

        rest_client.upload_file.assert_awaited_once_with("documents", "tenant-a/x.txt", b"hi", "text/plain")
        rest_client.remove_file.assert_awaited_once_with("documents", "tenant-a/x.txt")
