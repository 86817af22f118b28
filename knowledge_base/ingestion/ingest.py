"""
Command-line ingestion of local files into a tenant's knowledge base.

Usage:
    python -m knowledge_base.ingestion.ingest --tenant acme docs/*.pdf
"""

import argparse
import asyncio
import json
import logging
import os
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from ..errors import KnowledgeBaseError
from ..service import KnowledgeBaseService
from .models import Document, DocumentStatus, EmbeddingConfig

load_dotenv()

logger = logging.getLogger(__name__)


async def ingest_files(
    service: KnowledgeBaseService,
    tenant_id: str,
    paths: List[str],
    strategy: Optional[dict] = None,
    embedding_config: Optional[EmbeddingConfig] = None,
) -> List[Document]:
    """
    Upload files and wait until every one has finished processing.

    Files that fail validation are logged and skipped.

    Returns:
        Final state of each accepted document
    """
    accepted = []

    for i, path in enumerate(paths):
        filename = os.path.basename(path)
        content_type = service.processor.content_type_for(filename)
        if content_type is None:
            logger.error(f"Skipping {filename}: unsupported file extension")
            continue

        with open(path, "rb") as f:
            content = f.read()

        try:
            result = await service.upload_document(
                tenant_id,
                filename,
                content,
                content_type,
                strategy=strategy,
                embedding_config=embedding_config,
            )
            accepted.append(result.id)
            print(f"Progress: {i + 1}/{len(paths)} files uploaded")
        except KnowledgeBaseError as e:
            logger.error(f"Skipping {filename}: {e}")

    await service.drain()

    documents = []
    for document_id in accepted:
        try:
            documents.append(await service.get_document_status(tenant_id, document_id))
        except KnowledgeBaseError:
            # Superseded by a later file in the same run
            continue
    return documents


async def main():
    """Main function for running ingestion."""
    parser = argparse.ArgumentParser(description="Ingest files into a tenant knowledge base")
    parser.add_argument("files", nargs="+", help="Files to ingest")
    parser.add_argument("--tenant", "-t", required=True, help="Tenant id")
    parser.add_argument("--strategy", help="Chunking strategy overrides as a JSON object")
    parser.add_argument("--model", help="Embedding model (default from settings)")
    parser.add_argument("--dimensions", type=int, help="Embedding dimensions")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    strategy = json.loads(args.strategy) if args.strategy else None

    embedding_config = None
    if args.model:
        if args.dimensions:
            embedding_config = EmbeddingConfig(model=args.model, dimensions=args.dimensions)
        else:
            embedding_config = EmbeddingConfig.for_model(args.model)

    service = KnowledgeBaseService.from_settings()

    try:
        start_time = datetime.now()

        documents = await ingest_files(
            service, args.tenant, args.files, strategy, embedding_config
        )

        total_time = (datetime.now() - start_time).total_seconds()

        print("\n" + "=" * 50)
        print("INGESTION SUMMARY")
        print("=" * 50)
        print(f"Documents processed: {len(documents)}")
        print(f"Total chunks created: {sum(d.processed_chunks for d in documents)}")
        print(f"Total errors: {sum(1 for d in documents if d.status == DocumentStatus.ERROR)}")
        print(f"Total processing time: {total_time:.2f} seconds")
        print()

        for document in documents:
            status = "✓" if document.status == DocumentStatus.READY else "✗"
            print(f"{status} {document.filename}: {document.processed_chunks} chunks")
            if document.error_message:
                print(f"  Error: {document.error_message}")

    except KeyboardInterrupt:
        print("\nIngestion interrupted by user")
    except Exception as e:
        logger.error(f"Ingestion failed: {e}")
        raise


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
