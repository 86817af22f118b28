"""Tenant knowledge base API endpoints: upload, status, delete and search."""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from knowledge_base.errors import DocumentNotFound, FileTooLarge, UnsupportedFormat, ValidationError
from knowledge_base.ingestion.models import Document, EmbeddingConfig, RankedChunk, UploadResult
from knowledge_base.service import KnowledgeBaseService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["knowledge-base"])

GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}


class SearchRequest(BaseModel):
    """Search request body."""

    query: str = Field(..., min_length=1, max_length=2000)
    limit: Optional[int] = Field(default=None, ge=1)
    rerank: Optional[bool] = None


class SearchResponse(BaseModel):
    results: List[RankedChunk]
    count: int


def get_service() -> KnowledgeBaseService:
    """Shared service from application state."""
    from app.main import app_state

    if app_state.service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Knowledge base service not initialized",
        )
    return app_state.service


def _parse_strategy(strategy: Optional[str]) -> Optional[dict]:
    if not strategy:
        return None
    try:
        parsed = json.loads(strategy)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid strategy JSON: {e}")
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=400, detail="Strategy must be a JSON object")
    return parsed


def _embedding_config(
    model: Optional[str], dimensions: Optional[int]
) -> Optional[EmbeddingConfig]:
    if not model:
        return None
    try:
        if dimensions:
            return EmbeddingConfig(model=model, dimensions=dimensions)
        return EmbeddingConfig.for_model(model)
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid embedding config: {e}")


@router.post("/documents", response_model=UploadResult, status_code=status.HTTP_202_ACCEPTED)
async def upload_document(
    tenant_id: str,
    file: UploadFile = File(...),
    strategy: Optional[str] = Form(None),
    embedding_model: Optional[str] = Form(None),
    embedding_dimensions: Optional[int] = Form(None),
    service: KnowledgeBaseService = Depends(get_service),
):
    """
    Upload a document for background ingestion.

    The response returns as soon as the file is stored; poll the document
    for progress.

    Args:
        tenant_id: Owning tenant
        file: Multipart file
        strategy: Optional chunking overrides as a JSON object
        embedding_model: Optional embedding model override
        embedding_dimensions: Optional embedding dimensions override

    Returns:
        UploadResult with the new document id
    """
    filename = file.filename or "upload"
    content_type = (file.content_type or "").split(";")[0].strip()
    if content_type in GENERIC_CONTENT_TYPES:
        content_type = service.processor.content_type_for(filename) or content_type

    content = await file.read()

    try:
        return await service.upload_document(
            tenant_id,
            filename,
            content,
            content_type,
            strategy=_parse_strategy(strategy),
            embedding_config=_embedding_config(embedding_model, embedding_dimensions),
        )
    except FileTooLarge as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except UnsupportedFormat as e:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/documents", response_model=List[Document])
async def list_documents(tenant_id: str, service: KnowledgeBaseService = Depends(get_service)):
    """List a tenant's documents, newest first."""
    return await service.list_documents(tenant_id)


@router.get("/documents/{document_id}", response_model=Document)
async def get_document(
    tenant_id: str, document_id: str, service: KnowledgeBaseService = Depends(get_service)
):
    """Document status and ingestion progress."""
    try:
        return await service.get_document_status(tenant_id, document_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Document not found")


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    tenant_id: str, document_id: str, service: KnowledgeBaseService = Depends(get_service)
):
    try:
        await service.delete_document(tenant_id, document_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Document not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/search", response_model=SearchResponse)
async def search(
    tenant_id: str,
    request: SearchRequest,
    service: KnowledgeBaseService = Depends(get_service),
):
    """
    Semantic search over the tenant's ready documents.

    Failures inside retrieval produce an empty result rather than an error.
    """
    results = await service.search(
        tenant_id, request.query, limit=request.limit, rerank=request.rerank
    )
    return SearchResponse(results=results, count=len(results))


@router.get("/supported-types")
async def supported_types(tenant_id: str, service: KnowledgeBaseService = Depends(get_service)):
    """Formats accepted for upload."""
    return {"types": service.get_supported_types()}
