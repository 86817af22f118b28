"""
Document processor: validation, checksums and dispatch to format extractors.

Extractors are looked up by content type in a registry, so supporting a new
format means adding one more extractor class to `_EXTRACTORS`.
"""

import hashlib
import os
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from ..config import settings
from ..errors import FileTooLarge, UnsupportedFormat
from .chunker import TextChunker
from .extractors.base import BaseExtractor
from .extractors.json_extractor import JsonExtractor
from .extractors.pdf_extractor import PdfExtractor
from .extractors.tabular_extractor import CsvExtractor, ExcelExtractor
from .extractors.text_extractor import PlainTextExtractor, WordExtractor
from .models import ProcessingResult
from .strategy import ChunkingStrategy, merge_strategy
from .tokenizer import TokenCounter, get_token_counter

logger = logging.getLogger(__name__)


# Extractor registry, in the order formats are listed to users
_EXTRACTORS: List[Type[BaseExtractor]] = [
    PlainTextExtractor,
    JsonExtractor,
    PdfExtractor,
    WordExtractor,
    CsvExtractor,
    ExcelExtractor,
]

_FILE_EXTENSIONS = {
    "text/plain": ".txt",
    "application/json": ".json",
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/csv": ".csv",
    "application/csv": ".csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}


def calculate_checksum(content: bytes) -> str:
    """SHA-256 hex digest of the raw file bytes."""
    return hashlib.sha256(content).hexdigest()


class DocumentProcessor:
    """Validates uploads and turns them into chunks via format extractors."""

    def __init__(
        self,
        count_tokens: Optional[TokenCounter] = None,
        max_file_size_mb: Optional[float] = None,
    ):
        """
        Initialize processor.

        Args:
            count_tokens: Token counter (default: tokenizer from settings)
            max_file_size_mb: Upload size limit (default from settings)
        """
        self.count_tokens = count_tokens or get_token_counter()
        self.max_file_size_mb = (
            max_file_size_mb if max_file_size_mb is not None else settings.upload.max_file_size_mb
        )
        self.chunker = TextChunker(self.count_tokens)

        self._extractors: Dict[str, BaseExtractor] = {}
        for extractor_cls in _EXTRACTORS:
            extractor = extractor_cls(self.chunker)
            for content_type in extractor_cls.content_types:
                self._extractors[content_type] = extractor

    def get_supported_types(self) -> List[Dict[str, str]]:
        """List supported formats for display, e.g. in an upload form."""
        return [
            {
                "content_type": content_type,
                "extension": _FILE_EXTENSIONS.get(content_type, ""),
                "file_type": extractor.file_type,
            }
            for content_type, extractor in self._extractors.items()
        ]

    def extension_for(self, content_type: str) -> str:
        return _FILE_EXTENSIONS.get(content_type, "")

    def content_type_for(self, filename: str) -> Optional[str]:
        """Guess a supported content type from a filename's extension."""
        extension = os.path.splitext(filename)[1].lower()
        for content_type, known_extension in _FILE_EXTENSIONS.items():
            if known_extension == extension and content_type in self._extractors:
                return content_type
        return None

    def validate_file(
        self, content: bytes, content_type: str, max_size_mb: Optional[float] = None
    ) -> None:
        """
        Reject uploads that are too large or of an unsupported type.

        Args:
            content: Raw file bytes
            content_type: Declared MIME type
            max_size_mb: Size limit override

        Raises:
            FileTooLarge: If content exceeds the limit
            UnsupportedFormat: If no extractor handles content_type
        """
        limit_mb = max_size_mb if max_size_mb is not None else self.max_file_size_mb

        if len(content) > limit_mb * 1024 * 1024:
            raise FileTooLarge(len(content), limit_mb)

        if content_type not in self._extractors:
            raise UnsupportedFormat(content_type)

    def calculate_checksum(self, content: bytes) -> str:
        return calculate_checksum(content)

    def process_document(
        self,
        content: bytes,
        content_type: str,
        filename: str,
        strategy: Optional[Union[ChunkingStrategy, Mapping[str, Any]]] = None,
    ) -> ProcessingResult:
        """
        Extract and chunk a document.

        Args:
            content: Raw file bytes
            content_type: MIME type selecting the extractor
            filename: Original filename
            strategy: Chunking overrides merged over the defaults

        Returns:
            ProcessingResult with chunks, total tokens and file type

        Raises:
            UnsupportedFormat: If no extractor handles content_type
            ExtractionError: If the content cannot be parsed
        """
        extractor = self._extractors.get(content_type)
        if extractor is None:
            raise UnsupportedFormat(content_type)

        merged = merge_strategy(strategy)
        logger.info(f"Processing {filename} ({content_type})")

        result = extractor.extract(content, filename, merged)

        logger.info(
            f"Created {len(result.chunks)} chunks from {filename}, ~{result.total_tokens} tokens"
        )
        return result
