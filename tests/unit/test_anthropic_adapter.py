"""Unit tests for shared/services/anthropic_adapter.py (AnthropicAdapter)."""

from unittest.mock import MagicMock, patch

import pytest

from shared.services.anthropic_adapter import DEFAULT_CLAUDE_MODEL, JSON_ONLY_INSTRUCTION, AnthropicAdapter


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def adapter():
    with patch("shared.services.anthropic_adapter.anthropic") as mock_anthropic:
        mock_anthropic.Anthropic.return_value = MagicMock()
        ad = AnthropicAdapter(api_key="test-key-fake")
    return ad


def _text_block(text):
    block = MagicMock()
    block.type = "text"
    block.text = text
    return block


# ---------------------------------------------------------------------------
# Tests: _build_kwargs
# ---------------------------------------------------------------------------

class TestBuildKwargs:
    def test_json_mode_appends_instruction(self, adapter):
        kwargs = adapter._build_kwargs("Hello", system_prompt="Be kind.", json_mode=True)

        assert kwargs["model"] == DEFAULT_CLAUDE_MODEL
        assert kwargs["max_tokens"] == 4096
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert kwargs["system"] == f"Be kind.\n\n{JSON_ONLY_INSTRUCTION}"

    def test_text_mode_without_system(self, adapter):
        kwargs = adapter._build_kwargs("Hello", json_mode=False)
        assert "system" not in kwargs


# ---------------------------------------------------------------------------
# Tests: _parse_response / call_sync
# ---------------------------------------------------------------------------

class TestParseResponse:
    def test_joins_text_blocks(self, adapter):
        thinking = MagicMock()
        thinking.type = "thinking"
        response = MagicMock(content=[_text_block('{"a": '), thinking, _text_block("1}")])

        result = adapter._parse_response(response)

        assert result == {"output_text": '{"a": 1}', "parsed": {"a": 1}}

    def test_non_json_in_json_mode(self, adapter):
        response = MagicMock(content=[_text_block("Sure thing!")])
        assert adapter._parse_response(response)["parsed"] is None

    def test_call_sync(self, adapter):
        adapter.client.messages.create.return_value = MagicMock(content=[_text_block('{"ok": true}')])

        result = adapter.call_sync("prompt", system_prompt="sys")

        assert result["parsed"] == {"ok": True}
        kwargs = adapter.client.messages.create.call_args.kwargs
        assert kwargs["messages"][0]["content"] == "prompt"
