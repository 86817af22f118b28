"""JSON extraction with structure-preserving or flattened chunking.

Structure-preserving mode walks the parsed value:

- scalars, and anything at ``max_depth``, become one ``json`` chunk
- arrays are grouped item by item up to ``chunk_size`` characters
  (``json_array`` chunks carrying ``start_index``/``end_index``)
- objects that render within ``chunk_size`` become one ``json_object`` chunk,
  larger ones are walked key by key with a dotted path

Flatten mode renders the whole value as indented ``key: value`` text and runs
the linear chunker over it (``json_flat`` chunks).
"""

import json
import logging
from typing import Any, List

from ...errors import ExtractionError
from ..models import ProcessedChunk, ProcessingResult
from ..strategy import ChunkingStrategy, JsonStrategy
from .base import BaseExtractor

logger = logging.getLogger(__name__)

# Scalars shorter than this carry too little context to be worth embedding
MIN_SCALAR_CHUNK_CHARS = 10
FLATTEN_OVERLAP = 100


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _scalar_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _compact(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def format_json_value(value: Any, path: str, include_keys: bool) -> str:
    """Render a JSON value one level deep as readable text.

    Nested containers inside the value are serialized inline.

    Args:
        value: Parsed JSON value
        path: Dotted path of the value ('' at the root)
        include_keys: Prefix the text with the path

    Returns:
        Readable text for the value
    """
    if not _is_container(value):
        text = _scalar_text(value)
        return f"{path}: {text}" if include_keys and path else text

    lines: List[str] = []
    if include_keys and path:
        lines.append(f"{path}:")

    items = enumerate(value) if isinstance(value, list) else value.items()
    for key, item in items:
        label = f"[{key}]" if isinstance(value, list) else key
        rendered = _compact(item) if _is_container(item) else _scalar_text(item)
        lines.append(f"  {label}: {rendered}")

    return "\n".join(lines)


def json_to_readable_text(value: Any, include_keys: bool, depth: int = 0) -> str:
    """Flatten a JSON value into indented 'key: value' lines."""
    if not _is_container(value):
        return _scalar_text(value)

    indent = "  " * depth
    lines: List[str] = []

    if isinstance(value, list):
        labelled = ((f"Item {index + 1}", item) for index, item in enumerate(value))
    else:
        labelled = ((key, item) for key, item in value.items())

    for label, item in labelled:
        if _is_container(item):
            if include_keys:
                lines.append(f"{indent}{label}:")
            lines.append(json_to_readable_text(item, include_keys, depth + 1))
        else:
            prefix = f"{label}: " if include_keys else ""
            lines.append(f"{indent}{prefix}{_scalar_text(item)}")

    return "\n".join(lines)


class JsonExtractor(BaseExtractor):
    """Chunks JSON documents according to the json strategy."""

    file_type = "json"
    content_types = ("application/json",)

    def extract(self, content: bytes, filename: str, strategy: ChunkingStrategy) -> ProcessingResult:
        json_text = self._decode(content, filename)

        try:
            data = json.loads(json_text)
        except (ValueError, RecursionError) as e:
            raise ExtractionError(f"Invalid JSON file: {e}", file_type=self.file_type) from e

        config = strategy.json_
        if config.preserve_structure:
            chunks: List[ProcessedChunk] = []
            self._extract_structured(data, chunks, "", config, depth=0)
        else:
            chunks = self._extract_flat(data, config)

        return ProcessingResult(
            chunks=[chunk for chunk in chunks if chunk.text.strip()],
            total_tokens=self.count_tokens(json_text),
            file_type=self.file_type,
        )

    def _extract_structured(
        self,
        value: Any,
        chunks: List[ProcessedChunk],
        path: str,
        config: JsonStrategy,
        depth: int,
    ) -> None:
        if depth >= config.max_depth or not _is_container(value):
            text = format_json_value(value, path, config.include_keys)
            # A document that is a single scalar keeps it whatever its length
            if not path or len(text) > MIN_SCALAR_CHUNK_CHARS:
                chunks.append(
                    ProcessedChunk(text=text, metadata={"type": "json", "path": path, "depth": depth})
                )
            return

        if isinstance(value, list):
            self._extract_array(value, chunks, path or "items", config, depth)
            return

        object_text = format_json_value(value, path, config.include_keys)
        if len(object_text) <= config.chunk_size:
            chunks.append(
                ProcessedChunk(
                    text=object_text, metadata={"type": "json_object", "path": path, "depth": depth}
                )
            )
            return

        for key, item in value.items():
            child_path = f"{path}.{key}" if path else key
            self._extract_structured(item, chunks, child_path, config, depth + 1)

    def _extract_array(
        self,
        items: List[Any],
        chunks: List[ProcessedChunk],
        array_path: str,
        config: JsonStrategy,
        depth: int,
    ) -> None:
        def flush(text: str, start: int, end: int) -> None:
            chunks.append(
                ProcessedChunk(
                    text=text.strip(),
                    metadata={
                        "type": "json_array",
                        "path": array_path,
                        "start_index": start,
                        "end_index": end,
                        "depth": depth,
                    },
                )
            )

        current = ""
        start_index = 0

        for idx, item in enumerate(items):
            item_text = format_json_value(item, f"{array_path}[{idx}]", config.include_keys)

            if current and len(current) + len(item_text) > config.chunk_size:
                flush(current, start_index, idx - 1)
                current = item_text + "\n"
                start_index = idx
            else:
                current += item_text + "\n"

        if current.strip():
            flush(current, start_index, len(items) - 1)

    def _extract_flat(self, data: Any, config: JsonStrategy) -> List[ProcessedChunk]:
        flat_text = json_to_readable_text(data, config.include_keys)
        pieces = self.chunker.split(
            flat_text,
            chunk_size=config.chunk_size,
            overlap=min(FLATTEN_OVERLAP, max(config.chunk_size - 1, 0)),
            respect_sentences=False,
        )

        return [
            ProcessedChunk(text=piece, metadata={"type": "json_flat", "chunk_index": idx})
            for idx, piece in enumerate(pieces)
        ]
