"""Base class for format-specific extractors."""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Tuple

from ...errors import ExtractionError
from ..chunker import TextChunker
from ..models import ProcessingResult
from ..strategy import ChunkingStrategy

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """Turns raw file bytes into chunk-ready text fragments.

    Subclasses declare the MIME types they handle and the ``file_type`` label
    written to the result. Extraction is synchronous and CPU bound; callers run
    it in a worker thread.
    """

    file_type: ClassVar[str]
    content_types: ClassVar[Tuple[str, ...]]

    def __init__(self, chunker: TextChunker):
        self.chunker = chunker

    @property
    def count_tokens(self):
        return self.chunker.count_tokens

    @abstractmethod
    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        """Extract chunks from file content.

        Args:
            content: Raw file bytes
            filename: Original filename (used for logging and metadata)
            strategy: Fully merged chunking strategy

        Returns:
            ProcessingResult with chunks, total token count and file type

        Raises:
            ExtractionError: If the content cannot be parsed
        """
        pass

    def _decode(self, content: bytes, filename: str) -> str:
        """Decode UTF-8 content, tolerating a byte order mark."""
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ExtractionError(
                f"{filename} is not valid UTF-8 text: {e}", file_type=self.file_type
            ) from e
