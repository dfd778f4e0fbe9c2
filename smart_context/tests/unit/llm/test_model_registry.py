"""Unit tests for the model context-limit registry."""

import logging

import pytest

from smart_context.configuration.config import ContextSettings
from smart_context.infrastructure.llm.model_registry import (
    get_model_context_limit,
    match_model_key,
)


@pytest.mark.unit
class TestModelContextLimit:
    """Test substring lookup."""

    def test_dated_model_name(self, settings):
        """Test a dated name resolves to its family entry."""
        assert get_model_context_limit("claude-3.5-sonnet-20241022", settings) == 200_000

    @pytest.mark.parametrize(
        "model, expected",
        [
            ("gpt-4o", 128_000),
            ("GPT-4o-Mini", 128_000),
            ("gpt-3.5-turbo-0125", 16_385),
            ("openrouter/deepseek-chat", 64_000),
            ("gemini-1.5-pro-latest", 1_000_000),
            ("glm-4-flash", 128_000),
        ],
    )
    def test_known_models(self, settings, model, expected):
        """Test case-insensitive and provider-prefixed names."""
        assert get_model_context_limit(model, settings) == expected

    def test_longest_key_wins(self, settings):
        """Test overlapping keys resolve to the most specific one."""
        assert match_model_key("gpt-4o-mini-2024", settings.model_context_limits) == "gpt-4o-mini"
        assert match_model_key("glm-4-flash", settings.model_context_limits) == "glm-4-flash"

    def test_unknown_model_falls_back(self, settings, caplog):
        """Test unknown names use the default and log a warning."""
        with caplog.at_level(logging.WARNING):
            assert get_model_context_limit("mystery-model", settings) == 128_000
        assert "mystery-model" in caplog.text

    @pytest.mark.parametrize("model", ["", "   ", "default"])
    def test_malformed_names_fall_back(self, settings, model):
        """Test empty or placeholder names never raise."""
        assert get_model_context_limit(model, settings) == settings.default_context_limit

    def test_custom_table(self):
        """Test the table is configurable."""
        settings = ContextSettings(
            _env_file=None,
            model_context_limits={"local-llama": 8_192},
            default_context_limit=4_096,
        )
        assert get_model_context_limit("local-llama-3-8b", settings) == 8_192
        assert get_model_context_limit("gpt-4o", settings) == 4_096
