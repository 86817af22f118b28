"""Tests for chunking strategy merging."""

from knowledge_base.ingestion.strategy import (
    DEFAULT_STRATEGY,
    ChunkingStrategy,
    merge_strategy,
)


class TestDefaults:
    """Built-in defaults per format."""

    def test_default_values(self):
        strategy = merge_strategy()

        assert strategy.json_.preserve_structure is True
        assert strategy.json_.max_depth == 3
        assert strategy.json_.chunk_size == 500
        assert strategy.csv.rows_per_chunk == 10
        assert strategy.csv.column_separator == ", "
        assert strategy.excel.include_sheet_name is True
        assert strategy.excel.sheets_to_process is None
        assert strategy.pdf.chunk_size == 1000
        assert strategy.pdf.overlap == 200
        assert strategy.text.respect_sentences is True

    def test_none_and_empty_give_defaults(self):
        assert merge_strategy(None) == DEFAULT_STRATEGY
        assert merge_strategy({}) == DEFAULT_STRATEGY


class TestMerge:
    """Per-format shallow merge."""

    def test_override_replaces_only_named_keys(self):
        strategy = merge_strategy({"csv": {"rows_per_chunk": 5}})

        assert strategy.csv.rows_per_chunk == 5
        assert strategy.csv.include_headers is True
        assert strategy.pdf == DEFAULT_STRATEGY.pdf

    def test_camel_case_keys_accepted(self):
        strategy = merge_strategy(
            {"excel": {"rowsPerChunk": 3, "sheetsToProcess": ["Prices"]}, "json": {"preserveStructure": False}}
        )

        assert strategy.excel.rows_per_chunk == 3
        assert strategy.excel.sheets_to_process == ["Prices"]
        assert strategy.json_.preserve_structure is False

    def test_unknown_keys_ignored(self):
        strategy = merge_strategy({"text": {"chunk_size": 300, "bogus": True}, "audio": {"x": 1}})

        assert strategy.text.chunk_size == 300
        assert not hasattr(strategy.text, "bogus")

    def test_defaults_never_mutated(self):
        merge_strategy({"pdf": {"chunk_size": 50}})

        assert DEFAULT_STRATEGY.pdf.chunk_size == 1000

    def test_out_of_range_values_accepted(self):
        """Range problems surface at chunking time, not at merge time."""
        strategy = merge_strategy({"text": {"chunk_size": 10, "overlap": 50}})

        assert strategy.text.chunk_size == 10
        assert strategy.text.overlap == 50

    def test_strategy_instance_is_copied(self):
        original = merge_strategy({"csv": {"rows_per_chunk": 2}})
        merged = merge_strategy(original)

        assert merged == original
        assert merged is not original

    def test_alias_round_trip(self):
        dumped = merge_strategy({"json": {"max_depth": 1}}).model_dump(by_alias=True)

        assert dumped["json"]["max_depth"] == 1
        assert ChunkingStrategy.model_validate(dumped).json_.max_depth == 1
