"""Data models for document ingestion and retrieval."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# Supported dimensions per model. The first entry is the model's native size.
EMBEDDING_MODELS: Dict[str, List[int]] = {
    "text-embedding-3-large": [3072, 1536, 1024, 512, 256],
    "text-embedding-3-small": [1536, 1024, 512, 256],
    "text-embedding-ada-002": [1536],
}

# Models that reject the `dimensions` request parameter
FIXED_DIMENSION_MODELS = {"text-embedding-ada-002"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Document lifecycle: uploaded -> processing -> ready | error."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class EmbeddingConfig(BaseModel):
    """Embedding model and vector size used for a set of chunks."""

    model: str
    dimensions: int = Field(gt=0)

    @field_validator("dimensions")
    @classmethod
    def validate_dimensions(cls, v: int, info) -> int:
        """Reject sizes the model cannot produce."""
        supported = EMBEDDING_MODELS.get(info.data.get("model", ""))
        if supported and v not in supported:
            raise ValueError(
                f"{info.data['model']} supports dimensions {sorted(supported)}, got {v}"
            )
        return v

    @classmethod
    def for_model(cls, model: str) -> "EmbeddingConfig":
        """Build a config at the model's native size (1536 for unknown models)."""
        supported = EMBEDDING_MODELS.get(model, [1536])
        return cls(model=model, dimensions=supported[0])

    @property
    def sends_dimensions(self) -> bool:
        """Whether the provider call should carry the `dimensions` parameter."""
        return self.model not in FIXED_DIMENSION_MODELS


class ProcessedChunk(BaseModel):
    """A text fragment produced by an extractor."""

    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessingResult(BaseModel):
    """Extractor output for one document."""

    chunks: List[ProcessedChunk] = Field(default_factory=list)
    total_tokens: int = 0
    file_type: str


class Document(BaseModel):
    """A tenant's uploaded file and its ingestion state."""

    id: str
    tenant_id: str
    filename: str
    content_type: str
    size: int
    storage_path: str
    checksum: str
    status: DocumentStatus = DocumentStatus.UPLOADED
    error_message: Optional[str] = None
    processed_chunks: int = 0
    total_chunks: int = 0
    processing_progress: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class StoredChunk(BaseModel):
    """An embedded chunk as persisted in the document store."""

    id: str
    document_id: str
    tenant_id: str
    chunk_index: int = Field(ge=0)
    text: str
    token_count: int
    embedding: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RankedChunk(BaseModel):
    """A retrieved chunk with its similarity and optional rerank score."""

    text: str
    similarity: float
    filename: Optional[str] = None
    document_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    rerank_score: Optional[float] = None
    rerank_reason: Optional[str] = None


class UploadResult(BaseModel):
    """Immediate response to an accepted upload."""

    id: str
    filename: str
    size: int
    status: DocumentStatus
    message: str


def progress_percent(processed: int, total: int) -> int:
    """Integer percentage of processed chunks, 0 when there is nothing to do."""
    if total <= 0:
        return 0
    return round(processed / total * 100)
