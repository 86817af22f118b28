"""Tests for token counting."""

from unittest.mock import MagicMock, patch

from knowledge_base.ingestion.tokenizer import approximate_token_count, get_token_counter


class TestApproximateTokenCount:
    def test_four_characters_per_token_rounded_up(self):
        assert approximate_token_count("") == 0
        assert approximate_token_count("abcd") == 1
        assert approximate_token_count("abcde") == 2


class TestGetTokenCounter:
    def test_counts_with_loaded_tokenizer(self):
        tokenizer = MagicMock()
        tokenizer.encode.return_value = [101, 202, 303]

        with patch(
            "knowledge_base.ingestion.tokenizer._load_tokenizer", return_value=tokenizer
        ) as load:
            count_tokens = get_token_counter("Xenova/text-embedding-ada-002")

        assert count_tokens("refund policy details") == 3
        load.assert_called_once_with("Xenova/text-embedding-ada-002")
        tokenizer.encode.assert_called_once_with("refund policy details", add_special_tokens=False)

    def test_model_defaults_to_settings(self):
        tokenizer = MagicMock()
        tokenizer.encode.return_value = []

        with patch(
            "knowledge_base.ingestion.tokenizer._load_tokenizer", return_value=tokenizer
        ) as load, patch(
            "knowledge_base.ingestion.tokenizer.settings"
        ) as settings:
            settings.embedding.tokenizer_model = "acme/tokenizer"
            get_token_counter()

        load.assert_called_once_with("acme/tokenizer")

    def test_falls_back_to_estimate_when_loading_fails(self):
        with patch(
            "knowledge_base.ingestion.tokenizer._load_tokenizer",
            side_effect=OSError("no network"),
        ):
            count_tokens = get_token_counter("Xenova/text-embedding-ada-002")

        assert count_tokens is approximate_token_count
        assert count_tokens("abcdefgh") == 2
