"""Per-format chunking strategies and the registry that merges caller overrides.

Tenant configuration is usually stored as JSON written by a JavaScript
dashboard, so override keys may arrive in camelCase (``rowsPerChunk``) as well
as snake_case (``rows_per_chunk``). Both are accepted.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class JsonStrategy(BaseModel):
    """JSON chunking options."""

    preserve_structure: bool = True
    max_depth: int = 3
    chunk_size: int = 500
    include_keys: bool = True


class CsvStrategy(BaseModel):
    """CSV chunking options."""

    rows_per_chunk: int = 10
    include_headers: bool = True
    column_separator: str = ", "


class ExcelStrategy(BaseModel):
    """Excel chunking options. ``sheets_to_process`` of None means every sheet."""

    rows_per_chunk: int = 10
    include_headers: bool = True
    include_sheet_name: bool = True
    sheets_to_process: Optional[List[str]] = None


class PdfStrategy(BaseModel):
    """PDF chunking options. Sizes are in tokens."""

    chunk_size: int = 1000
    overlap: int = 200
    preserve_paragraphs: bool = True


class TextStrategy(BaseModel):
    """Plain text and Word chunking options. Sizes are in tokens."""

    chunk_size: int = 1000
    overlap: int = 200
    respect_sentences: bool = True


class ChunkingStrategy(BaseModel):
    """Complete chunking strategy with one section per format."""

    model_config = ConfigDict(populate_by_name=True)

    json_: JsonStrategy = Field(default_factory=JsonStrategy, alias="json")
    csv: CsvStrategy = Field(default_factory=CsvStrategy)
    excel: ExcelStrategy = Field(default_factory=ExcelStrategy)
    pdf: PdfStrategy = Field(default_factory=PdfStrategy)
    text: TextStrategy = Field(default_factory=TextStrategy)


DEFAULT_STRATEGY = ChunkingStrategy()

_FORMAT_FIELDS = {"json": "json_", "csv": "csv", "excel": "excel", "pdf": "pdf", "text": "text"}


def _to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def merge_strategy(
    user_strategy: Optional[Mapping[str, Any]] = None,
    defaults: ChunkingStrategy = DEFAULT_STRATEGY,
) -> ChunkingStrategy:
    """Merge caller overrides over the built-in defaults.

    Merging is shallow and per format: each override section replaces only the
    keys it names, and a format the caller omits keeps its defaults entirely.
    Values are coerced to the declared types but not range checked; extractors
    cope with out-of-range values at chunking time. The defaults are never
    mutated.

    Args:
        user_strategy: Partial strategy keyed by format name, or None
        defaults: Strategy to merge over (built-in defaults when omitted)

    Returns:
        A new, fully populated ChunkingStrategy
    """
    if isinstance(user_strategy, ChunkingStrategy):
        return user_strategy.model_copy(deep=True)

    merged = {}
    overrides = user_strategy or {}

    for format_name, field_name in _FORMAT_FIELDS.items():
        base = getattr(defaults, field_name).model_dump()
        section = overrides.get(format_name)

        if isinstance(section, BaseModel):
            section = section.model_dump()
        if section:
            for key, value in section.items():
                snake_key = _to_snake_case(key)
                if snake_key in base:
                    base[snake_key] = value
                else:
                    logger.debug(f"Ignoring unknown {format_name} strategy option: {key}")

        merged[format_name] = base

    return ChunkingStrategy.model_validate(merged)
