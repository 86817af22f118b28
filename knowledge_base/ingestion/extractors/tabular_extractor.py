"""CSV and Excel extraction: fixed-size row groups rendered as labelled text."""

import csv
import io
import logging
from typing import Any, List, Optional, Sequence

import pandas as pd

from ...errors import ExtractionError
from ..models import ProcessedChunk, ProcessingResult
from ..strategy import ChunkingStrategy
from .base import BaseExtractor

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _cell_text(value: Any) -> str:
    # Whole floats come back from spreadsheets as 3.0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_rows(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    first_row_number: int,
    header_line: Optional[str] = None,
    prefix: str = "",
) -> str:
    """Render a group of rows as 'Row N:' blocks of 'header: value' lines.

    Empty cells are omitted.

    Args:
        headers: Column names
        rows: Row values, positionally aligned with headers
        first_row_number: 1-based number of the first row in the group
        header_line: Optional 'Columns: ...' line placed before the rows
        prefix: Text placed before everything else (e.g. the sheet name)

    Returns:
        Chunk text
    """
    text = prefix
    if header_line is not None:
        text += f"{header_line}\n\n"

    for offset, row in enumerate(rows):
        text += f"Row {first_row_number + offset}:\n"
        for col_idx, header in enumerate(headers):
            value = row[col_idx] if col_idx < len(row) else None
            if not _is_empty(value):
                text += f"  {header}: {_cell_text(value)}\n"
        text += "\n"

    return text.strip()


class CsvExtractor(BaseExtractor):
    """Groups CSV rows into chunks; the first line holds the column names."""

    file_type = "csv"
    content_types = ("text/csv", "application/csv")

    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        config = strategy.csv
        csv_text = self._decode(content, filename)

        try:
            reader = csv.reader(io.StringIO(csv_text))
            records = [row for row in reader if any(cell.strip() for cell in row)]
        except csv.Error as e:
            raise ExtractionError(f"Invalid CSV file: {e}", file_type=self.file_type) from e

        if not records:
            return ProcessingResult(chunks=[], total_tokens=0, file_type=self.file_type)

        headers, rows = records[0], records[1:]
        rows_per_chunk = max(config.rows_per_chunk, 1)
        header_line = (
            f"Columns: {config.column_separator.join(headers)}" if config.include_headers else None
        )

        chunks = []
        for start in range(0, len(rows), rows_per_chunk):
            batch = rows[start : start + rows_per_chunk]
            chunks.append(
                ProcessedChunk(
                    text=render_rows(headers, batch, start + 1, header_line),
                    metadata={
                        "type": "csv",
                        "start_row": start + 1,
                        "end_row": min(start + rows_per_chunk, len(rows)),
                        "total_rows": len(rows),
                        "headers": headers,
                    },
                )
            )

        logger.debug(f"Grouped {len(rows)} CSV rows from {filename} into {len(chunks)} chunks")

        # Counted on the rendered rows, as for spreadsheets
        return ProcessingResult(
            chunks=chunks,
            total_tokens=sum(self.count_tokens(chunk.text) for chunk in chunks),
            file_type=self.file_type,
        )


class ExcelExtractor(BaseExtractor):
    """Groups spreadsheet rows into chunks, sheet by sheet."""

    file_type = "excel"
    # Legacy .xls needs xlrd, which is not a dependency
    content_types = ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",)

    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        config = strategy.excel

        try:
            workbook = pd.read_excel(io.BytesIO(content), sheet_name=None, header=None, dtype=object)
        except Exception as e:
            raise ExtractionError(
                f"Not a readable spreadsheet: {filename} ({e})", file_type=self.file_type
            ) from e

        if config.sheets_to_process:
            sheet_names = [name for name in config.sheets_to_process if name in workbook]
        else:
            sheet_names = list(workbook)

        rows_per_chunk = max(config.rows_per_chunk, 1)
        chunks: List[ProcessedChunk] = []
        total_tokens = 0

        for sheet_name in sheet_names:
            frame = workbook[sheet_name].dropna(how="all")
            if frame.empty:
                continue

            records = frame.values.tolist()
            headers = ["" if _is_empty(h) else _cell_text(h) for h in records[0]]
            rows = records[1:]

            prefix = f"Sheet: {sheet_name}\n" if config.include_sheet_name else ""
            header_line = f"Columns: {', '.join(headers)}" if config.include_headers else None

            for start in range(0, len(rows), rows_per_chunk):
                batch = rows[start : start + rows_per_chunk]
                text = render_rows(headers, batch, start + 1, header_line, prefix)
                chunks.append(
                    ProcessedChunk(
                        text=text,
                        metadata={
                            "type": "excel",
                            "sheet_name": sheet_name,
                            "start_row": start + 1,
                            "end_row": min(start + rows_per_chunk, len(rows)),
                            "total_rows": len(rows),
                            "headers": headers,
                        },
                    )
                )
                total_tokens += self.count_tokens(text)

        return ProcessingResult(chunks=chunks, total_tokens=total_tokens, file_type=self.file_type)
