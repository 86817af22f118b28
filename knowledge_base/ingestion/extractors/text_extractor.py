"""Plain text and Word document extraction."""

import io
import logging
from typing import List

from docx import Document as DocxDocument
from docx.table import Table
from docx.text.paragraph import Paragraph

from ...errors import ExtractionError
from ..models import ProcessedChunk, ProcessingResult
from ..strategy import ChunkingStrategy
from .base import BaseExtractor

logger = logging.getLogger(__name__)


class PlainTextExtractor(BaseExtractor):
    """Linear chunking of UTF-8 text."""

    file_type = "text"
    content_types = ("text/plain",)

    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        text = self._decode(content, filename)
        return self._chunk_text(text, strategy)

    def _chunk_text(self, text: str, strategy: ChunkingStrategy) -> ProcessingResult:
        config = strategy.text
        pieces = self.chunker.split(
            text,
            chunk_size=config.chunk_size,
            overlap=config.overlap,
            respect_sentences=config.respect_sentences,
        )

        return ProcessingResult(
            chunks=[
                ProcessedChunk(text=piece, metadata={"type": self.file_type, "chunk_index": idx})
                for idx, piece in enumerate(pieces)
            ],
            total_tokens=self.count_tokens(text),
            file_type=self.file_type,
        )


class WordExtractor(PlainTextExtractor):
    """Word documents: paragraphs and tables in body order, chunked like plain text."""

    file_type = "word"
    content_types = ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",)

    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        try:
            docx_doc = DocxDocument(io.BytesIO(content))
        except Exception as e:
            raise ExtractionError(
                f"Not a readable Word document: {filename} ({e})", file_type=self.file_type
            ) from e

        # Blocks are separated by a blank line so the splitter sees them as paragraphs
        text = "\n\n".join(self._body_blocks(docx_doc))
        logger.debug(f"Extracted {len(text)} chars from {filename}")

        return self._chunk_text(text, strategy)

    def _body_blocks(self, docx_doc) -> List[str]:
        blocks = []
        for element in docx_doc.element.body:
            tag = element.tag.rsplit("}", 1)[-1]

            if tag == "p":
                text = Paragraph(element, docx_doc).text.strip()
            elif tag == "tbl":
                text = table_to_text(Table(element, docx_doc))
            else:
                continue

            if text:
                blocks.append(text)
        return blocks


def table_to_text(table: Table) -> str:
    """One line per row, cells joined with ' | '. Empty rows are skipped."""
    lines = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]
        if any(cells):
            lines.append(" | ".join(cells))
    return "\n".join(lines)
