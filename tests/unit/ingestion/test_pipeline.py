"""Tests for the embedding batch pipeline."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import RateLimitError

from knowledge_base.errors import EmbeddingFatalError
from knowledge_base.ingestion.embedder import EmbeddingGenerator
from knowledge_base.ingestion.models import Document, DocumentStatus, ProcessedChunk
from knowledge_base.ingestion.pipeline import EmbeddingBatchPipeline
from knowledge_base.ingestion.tokenizer import approximate_token_count


def make_chunks(*texts):
    return [ProcessedChunk(text=t, metadata={"type": "text", "chunk_index": i}) for i, t in enumerate(texts)]


def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    return RateLimitError(
        "Rate limit reached", response=httpx.Response(429, request=request), body=None
    )


@pytest.fixture
async def document(store):
    return await store.create_document(
        Document(
            id="doc-1",
            tenant_id="tenant-a",
            filename="faq.txt",
            content_type="text/plain",
            size=100,
            storage_path="tenant-a/1-abc.txt",
            checksum="c" * 64,
            status=DocumentStatus.PROCESSING,
        )
    )


def failing_embedder(bad_text):
    def generate(text, config, chunk_index=None):
        if text == bad_text:
            raise EmbeddingFatalError("provider rejected input", chunk_index=chunk_index)
        return [0.5] * config.dimensions

    embedder = MagicMock()
    embedder.generate_embedding = AsyncMock(side_effect=generate)
    return embedder


class TestPipelineRun:
    @pytest.mark.asyncio
    async def test_all_batches_stored_and_ready(self, store, pipeline, document, embedding_config):
        chunks = make_chunks("one", "two", "three", "four", "five")

        ok = await pipeline.run(
            document.id, document.tenant_id, chunks, embedding_config, {"filename": "faq.txt"}
        )

        assert ok is True
        stored = store.chunks_for(document.id)
        assert [c.chunk_index for c in stored] == [0, 1, 2, 3, 4]
        assert [c.text for c in stored] == ["one", "two", "three", "four", "five"]

        final = await store.get_document(document.id)
        assert final.status == DocumentStatus.READY
        assert final.processed_chunks == 5
        assert final.total_chunks == 5
        assert final.processing_progress == 100

    @pytest.mark.asyncio
    async def test_chunk_metadata_and_tokens(self, store, pipeline, document, embedding_config):
        await pipeline.run(
            document.id,
            document.tenant_id,
            make_chunks("refund policy details"),
            embedding_config,
            {"filename": "faq.txt", "content_type": "text/plain"},
        )

        chunk = store.chunks_for(document.id)[0]
        assert chunk.tenant_id == "tenant-a"
        assert chunk.token_count == approximate_token_count("refund policy details")
        assert len(chunk.embedding) == 256
        assert chunk.metadata == {
            "filename": "faq.txt",
            "content_type": "text/plain",
            "type": "text",
            "chunk_index": 0,
            "embedding_model": "text-embedding-3-small",
            "embedding_dimensions": 256,
        }

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_batches(self, store, document, embedding_config):
        embedder = failing_embedder("bad")
        pipeline = EmbeddingBatchPipeline(store, embedder, batch_size=2, batch_delay=0)

        ok = await pipeline.run(
            document.id,
            document.tenant_id,
            make_chunks("one", "two", "three", "bad", "five"),
            embedding_config,
        )

        assert ok is False
        assert [c.chunk_index for c in store.chunks_for(document.id)] == [0, 1]

        final = await store.get_document(document.id)
        assert final.status == DocumentStatus.ERROR
        assert "provider rejected input" in final.error_message
        assert final.processed_chunks == 2
        assert final.total_chunks == 5

        # The third batch is never attempted
        embedded = [c.args[0] for c in embedder.generate_embedding.await_args_list]
        assert "five" not in embedded

    @pytest.mark.asyncio
    async def test_no_chunks_is_ready(self, store, pipeline, document, embedding_config):
        ok = await pipeline.run(document.id, document.tenant_id, [], embedding_config)

        assert ok is True
        final = await store.get_document(document.id)
        assert final.status == DocumentStatus.READY
        assert final.total_chunks == 0
        assert final.processing_progress == 0

    @pytest.mark.asyncio
    async def test_delay_only_between_batches(self, store, embedder, document, embedding_config):
        pipeline = EmbeddingBatchPipeline(store, embedder, batch_size=2, batch_delay=0.5)

        with patch("knowledge_base.ingestion.pipeline.asyncio.sleep", new=AsyncMock()) as sleep:
            await pipeline.run(
                document.id, document.tenant_id, make_chunks("a", "b", "c", "d", "e"), embedding_config
            )

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_store_failure_marks_error(self, store, pipeline, document, embedding_config):
        store.insert_chunks = AsyncMock(side_effect=RuntimeError("database unavailable"))

        ok = await pipeline.run(document.id, document.tenant_id, make_chunks("one"), embedding_config)

        assert ok is False
        final = await store.get_document(document.id)
        assert final.status == DocumentStatus.ERROR
        assert final.error_message == "database unavailable"

    @pytest.mark.asyncio
    async def test_embedded_siblings_of_failed_batch_discarded(self, store, document, embedding_config):
        embedder = failing_embedder("bad")
        pipeline = EmbeddingBatchPipeline(store, embedder, batch_size=2, batch_delay=0)

        await pipeline.run(
            document.id,
            document.tenant_id,
            make_chunks("one", "two", "three", "bad"),
            embedding_config,
        )

        embedded = [c.args[0] for c in embedder.generate_embedding.await_args_list]
        assert "three" in embedded
        assert [c.text for c in store.chunks_for(document.id)] == ["one", "two"]


class TestPipelineTransientRecovery:
    @pytest.mark.asyncio
    async def test_two_transient_failures_then_success(self, store, document, embedding_config):
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            side_effect=[
                rate_limit_error(),
                rate_limit_error(),
                SimpleNamespace(data=[SimpleNamespace(embedding=[0.3] * 256)]),
            ]
        )
        embedder = EmbeddingGenerator(client=client, max_retries=3, retry_delay=5)
        pipeline = EmbeddingBatchPipeline(store, embedder, batch_size=5, batch_delay=0)

        with patch("knowledge_base.ingestion.embedder.asyncio.sleep", new=AsyncMock()) as sleep:
            ok = await pipeline.run(
                document.id, document.tenant_id, make_chunks("refund policy"), embedding_config
            )

        assert ok is True
        assert [c.args[0] for c in sleep.await_args_list] == [5, 10]

        stored = store.chunks_for(document.id)
        assert [c.text for c in stored] == ["refund policy"]
        assert stored[0].embedding == [0.3] * 256

        final = await store.get_document(document.id)
        assert final.status == DocumentStatus.READY
        assert final.processed_chunks == 1
        assert final.error_message is None
