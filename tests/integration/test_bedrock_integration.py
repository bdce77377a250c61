"""Integration tests against the live Amazon Bedrock runtime.

These tests make *real* API calls and need AWS credentials with Bedrock model
access in the target region.  All tests are marked ``integration`` and are
excluded from the default ``pytest`` run:

    # Run only integration tests
    pytest -m integration -v

    # Pick a region / models
    BEDROCK_AWS_REGION=us-west-2 \
    BEDROCK_CHAT_COMPLETION_MODEL_NAME=anthropic.claude-3-haiku-20240307-v1:0 \
    pytest -m integration -v
"""

# Load .env before any bedrockbridge import so settings see BEDROCK_* values.
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent.parent / ".env", override=True)

from typing import Any  # noqa: E402

import boto3  # noqa: E402
import pytest  # noqa: E402

from bedrockbridge.config import Settings  # noqa: E402
from bedrockbridge.llm import (  # noqa: E402
    AnthropicResponse,
    BedrockLLM,
    InvalidRequestError,
    TitanEmbeddingResponse,
)

pytestmark = pytest.mark.integration

# ---------------------------------------------------------------------------
# Skip conditions evaluated at collection time
# ---------------------------------------------------------------------------
_SETTINGS = Settings()
_HAS_CREDENTIALS = bool(_SETTINGS.client_options()) or (
    boto3.Session().get_credentials() is not None
)

needs_aws = pytest.mark.skipif(
    not _HAS_CREDENTIALS,
    reason="No AWS credentials found; skipping Bedrock integration tests",
)

_MESSAGES = [{"role": "user", "content": "Reply with the single word: pong"}]


@pytest.fixture(scope="module")
def llm() -> BedrockLLM:
    return BedrockLLM(settings=_SETTINGS, default_options={"max_tokens_to_sample": 64})


@needs_aws
class TestLiveChat:
    def test_non_streamed_chat(self, llm: BedrockLLM) -> None:
        response = llm.chat({"messages": _MESSAGES, "temperature": 0})

        assert isinstance(response, AnthropicResponse)
        assert "pong" in response.chat_completion.lower()
        assert response.prompt_tokens and response.completion_tokens

    def test_streamed_chat_matches_shape(self, llm: BedrockLLM) -> None:
        events: list[dict[str, Any]] = []

        response = llm.chat({"messages": _MESSAGES, "temperature": 0}, on_chunk=events.append)

        assert events[0]["type"] == "message_start"
        assert any(event["type"] == "content_block_delta" for event in events)
        assert response.chat_completion
        assert response.stop_reason in {"end_turn", "max_tokens", "stop_sequence"}
        assert response.total_tokens

    def test_bad_request_is_typed(self, llm: BedrockLLM) -> None:
        with pytest.raises(InvalidRequestError):
            llm.chat({"messages": [{"role": "nobody", "content": "?"}]})


@needs_aws
class TestLiveEmbedding:
    def test_titan_embedding(self, llm: BedrockLLM) -> None:
        response = llm.embed("The quick brown fox")

        assert isinstance(response, TitanEmbeddingResponse)
        assert len(response.embedding) > 0
        assert response.prompt_tokens
