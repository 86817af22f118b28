"""Custom exceptions for the knowledge base pipeline."""


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge base errors."""

    def __init__(self, message: str, document_id: str | None = None):
        self.document_id = document_id
        super().__init__(message)


class ValidationError(KnowledgeBaseError):
    """Upload rejected before anything was stored."""

    pass


class FileTooLarge(ValidationError):
    """Upload exceeds the configured size limit."""

    def __init__(self, size: int, max_size_mb: float):
        self.size = size
        self.max_size_mb = max_size_mb
        super().__init__(f"File size exceeds {max_size_mb:g}MB limit")


class UnsupportedFormat(ValidationError):
    """Content type has no registered extractor."""

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"Unsupported file type: {content_type}")


class ExtractionError(KnowledgeBaseError):
    """Document content could not be parsed."""

    def __init__(self, message: str, file_type: str | None = None):
        self.file_type = file_type
        super().__init__(message)


class EmbeddingTransientError(KnowledgeBaseError):
    """Provider error worth retrying (rate limit, quota, connection)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class EmbeddingFatalError(KnowledgeBaseError):
    """Provider error that stops ingestion of the document."""

    def __init__(self, message: str, chunk_index: int | None = None):
        self.chunk_index = chunk_index
        super().__init__(message)


class RetrievalError(KnowledgeBaseError):
    """Search could not be served."""

    pass


class EmbeddingConfigMismatch(RetrievalError):
    """Query embedding config does not match the tenant's stored chunks."""

    def __init__(self, requested: int, stored: list[int]):
        self.requested = requested
        self.stored = stored
        super().__init__(
            f"Query embedding has {requested} dimensions but stored chunks use {stored}"
        )


class DocumentNotFound(KnowledgeBaseError):
    """Document does not exist or belongs to another tenant."""

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}", document_id)
