"""
End-to-end ingestion and retrieval over the in-memory store.

Covers the path a tenant's file takes from upload to search results,
including the command-line ingestion entry point.
"""

import json

import pytest

from knowledge_base.ingestion.ingest import ingest_files
from knowledge_base.ingestion.models import DocumentStatus, EmbeddingConfig

pytestmark = pytest.mark.integration


class TestUploadToSearch:
    @pytest.mark.asyncio
    async def test_multi_chunk_document_ranked(self, service, store, sample_text):
        result = await service.upload_document(
            "tenant-a",
            "policies.txt",
            sample_text.encode(),
            "text/plain",
            strategy={"text": {"chunk_size": 20, "overlap": 0}},
        )
        await service.drain()

        document = await service.get_document_status("tenant-a", result.id)
        chunks = store.chunks_for(result.id)
        assert document.status == DocumentStatus.READY
        assert len(chunks) > 1
        assert document.processed_chunks == document.total_chunks == len(chunks)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

        target = chunks[-1]
        results = await service.search("tenant-a", target.text, limit=3)

        assert results
        assert results[0].text == target.text
        assert results[0].document_id == result.id
        assert all(r.similarity > 0.5 for r in results)
        assert [r.similarity for r in results] == sorted(
            (r.similarity for r in results), reverse=True
        )

    @pytest.mark.asyncio
    async def test_documents_in_error_are_not_searchable(self, service, store, embedding_client):
        text = "Opening hours are nine to five on weekdays."
        await service.upload_document("tenant-a", "hours.txt", text.encode(), "text/plain")
        await service.drain()
        document = (await service.list_documents("tenant-a"))[0]

        await store.update_status(document.id, DocumentStatus.ERROR, "reprocessing failed")

        assert await service.search("tenant-a", text) == []

    @pytest.mark.asyncio
    async def test_mismatched_query_dimensions_return_nothing(self, service):
        text = "Opening hours are nine to five on weekdays."
        await service.upload_document("tenant-a", "hours.txt", text.encode(), "text/plain")
        await service.drain()

        results = await service.search(
            "tenant-a",
            text,
            embedding_config=EmbeddingConfig(model="text-embedding-3-small", dimensions=512),
        )

        assert results == []

    @pytest.mark.asyncio
    async def test_deleted_document_disappears_from_search(self, service):
        text = "Opening hours are nine to five on weekdays."
        result = await service.upload_document("tenant-a", "hours.txt", text.encode(), "text/plain")
        await service.drain()
        assert await service.search("tenant-a", text)

        await service.delete_document("tenant-a", result.id)

        assert await service.search("tenant-a", text) == []


class TestIngestFiles:
    @pytest.mark.asyncio
    async def test_ingests_supported_files_and_skips_others(self, service, tmp_path, capsys):
        notes = tmp_path / "notes.txt"
        notes.write_text("Deliveries arrive on Tuesdays and Thursdays.")
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(json.dumps({"support": {"email": "help@example.com", "hours": "9-17"}}))
        image = tmp_path / "logo.png"
        image.write_bytes(b"\x89PNG")

        documents = await ingest_files(
            service, "tenant-a", [str(notes), str(settings_file), str(image)]
        )

        assert sorted(d.filename for d in documents) == ["notes.txt", "settings.json"]
        assert all(d.status == DocumentStatus.READY for d in documents)
        assert "Progress: 2/3 files uploaded" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_broken_file_reported_as_error(self, service, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{not json")

        documents = await ingest_files(service, "tenant-a", [str(broken)])

        assert len(documents) == 1
        assert documents[0].status == DocumentStatus.ERROR
        assert documents[0].error_message

    @pytest.mark.asyncio
    async def test_identical_files_leave_one_document(self, service, tmp_path):
        first = tmp_path / "a.txt"
        second = tmp_path / "b.txt"
        first.write_text("Same content in both files.")
        second.write_text("Same content in both files.")

        await ingest_files(service, "tenant-a", [str(first), str(second)])

        assert len(await service.list_documents("tenant-a")) == 1
