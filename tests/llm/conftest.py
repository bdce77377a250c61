"""Shared fixtures: Messages API stream events and a fake Bedrock runtime."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from bedrockbridge.llm.runtime import BedrockRuntime
from stream_events import block_start, json_delta, message_delta, message_start, text_delta


@pytest.fixture
def text_events() -> list[dict[str, Any]]:
    """A complete streamed reply: one text block saying "Hello"."""
    return [
        message_start(),
        block_start(0, {"type": "text", "text": ""}),
        text_delta(0, "Hel"),
        text_delta(0, "lo"),
        {"type": "content_block_stop", "index": 0},
        message_delta(usage={"output_tokens": 6}, stop_reason="end_turn", stop_sequence=None),
        {"type": "message_stop", "amazon-bedrock-invocationMetrics": {"inputTokenCount": 12}},
    ]


@pytest.fixture
def tool_events() -> list[dict[str, Any]]:
    """A streamed reply with a text block followed by a tool_use block."""
    return [
        message_start(),
        block_start(0, {"type": "text", "text": ""}),
        text_delta(0, "Checking the weather."),
        block_start(1, {"type": "tool_use", "id": "toolu_01", "name": "get_weather", "input": {}}),
        json_delta(1, ""),
        json_delta(1, '{"city": "Par'),
        json_delta(1, 'is", "unit": "c"}'),
        message_delta(usage={"output_tokens": 40}, stop_reason="tool_use"),
        {"type": "message_stop"},
    ]


@pytest.fixture
def fake_runtime() -> MagicMock:
    """A BedrockRuntime stand-in; set ``invoke.return_value`` / ``stream.return_value``."""
    return MagicMock(spec=BedrockRuntime)
