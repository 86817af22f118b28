"""PDF text extraction with whitespace cleanup."""

import io
import logging
import re

from pypdf import PdfReader

from ...errors import ExtractionError
from ..models import ProcessedChunk, ProcessingResult
from ..strategy import ChunkingStrategy
from .base import BaseExtractor

logger = logging.getLogger(__name__)

_HORIZONTAL_WHITESPACE = re.compile(r"[ \t]+")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")
_SINGLE_LINE_BREAK = re.compile(r"([^\n])\n(?=[^\n])")
_ANY_LINE_BREAKS = re.compile(r"\n+")


def clean_pdf_text(text: str, preserve_paragraphs: bool) -> str:
    """Normalize whitespace in text pulled out of a PDF.

    Args:
        text: Raw extracted text
        preserve_paragraphs: Keep blank-line paragraph breaks (joining the line
            breaks inside each paragraph) instead of flattening to one line

    Returns:
        Cleaned text
    """
    text = _HORIZONTAL_WHITESPACE.sub(" ", text)

    if preserve_paragraphs:
        text = _EXTRA_BLANK_LINES.sub("\n\n", text)
        text = _SINGLE_LINE_BREAK.sub(r"\1 ", text)
    else:
        text = _ANY_LINE_BREAKS.sub(" ", text)

    return text.strip()


class PdfExtractor(BaseExtractor):
    """Extracts page text with pypdf and chunks it sentence-aware."""

    file_type = "pdf"
    content_types = ("application/pdf",)

    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        config = strategy.pdf

        try:
            reader = PdfReader(io.BytesIO(content))
            page_count = len(reader.pages)
            raw_text = "\n\n".join((page.extract_text() or "") for page in reader.pages)
        except Exception as e:
            raise ExtractionError(
                f"Not a readable PDF: {filename} ({e})", file_type=self.file_type
            ) from e

        text = clean_pdf_text(raw_text, config.preserve_paragraphs)
        if not text:
            logger.warning(f"No extractable text in {filename} ({page_count} pages)")

        pieces = self.chunker.split(
            text,
            chunk_size=config.chunk_size,
            overlap=config.overlap,
            respect_sentences=True,
        )

        return ProcessingResult(
            chunks=[
                ProcessedChunk(
                    text=piece,
                    metadata={"type": "pdf", "chunk_index": idx, "page_count": page_count},
                )
                for idx, piece in enumerate(pieces)
            ],
            total_tokens=self.count_tokens(text),
            file_type=self.file_type,
        )
