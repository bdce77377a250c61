"""Unit tests for BedrockRuntime (runtime.py).

Mocking strategy
----------------
* The boto3 ``bedrock-runtime`` client is a ``MagicMock`` handed to the
  constructor, so ``invoke_model`` and ``invoke_model_with_response_stream``
  never touch the network.
* Retry waits are disabled by building the runtime with
  ``backoff_min=0, backoff_max=0``.
* ``boto3.client`` is patched only for the constructor tests.

No real API calls are made in this test suite.
"""

from __future__ import annotations

import io
import json
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    EventStreamError,
    NoCredentialsError,
    ReadTimeoutError,
)
from pytest_mock import MockerFixture
from structlog.testing import capture_logs

from bedrockbridge.config import Settings
from bedrockbridge.llm.errors import (
    AuthError,
    InvalidRequestError,
    MalformedStreamError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TimeoutError,
)
from bedrockbridge.llm.runtime import BedrockRuntime, map_error

_MODEL = "anthropic.claude-3-haiku-20240307-v1:0"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _client_error(code: str, message: str = "boom", operation: str = "InvokeModel") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _chunk(payload: dict[str, Any]) -> dict[str, Any]:
    return {"chunk": {"bytes": json.dumps(payload).encode()}}


class _EventStream:
    """Iterable stand-in for botocore's EventStream that records close()."""

    def __init__(self, events: list[dict[str, Any]]) -> None:
        self._events = events
        self.closed = False

    def __iter__(self):
        return iter(self._events)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def runtime(client: MagicMock) -> BedrockRuntime:
    return BedrockRuntime(client, max_retries=3, backoff_min=0, backoff_max=0)


# ---------------------------------------------------------------------------
# 1. invoke()
# ---------------------------------------------------------------------------


class TestInvoke:
    def test_sends_json_body_and_decodes_response(
        self, runtime: BedrockRuntime, client: MagicMock
    ) -> None:
        """The body is JSON-encoded; the response stream is read and decoded."""
        client.invoke_model.return_value = {"body": io.BytesIO(b'{"completion": " Hi"}')}

        payload = runtime.invoke("anthropic.claude-v2", {"prompt": "x", "top_k": 250})

        assert payload == {"completion": " Hi"}
        client.invoke_model.assert_called_once_with(
            modelId="anthropic.claude-v2",
            body=json.dumps({"prompt": "x", "top_k": 250}),
            contentType="application/json",
            accept="application/json",
        )

    def test_undecodable_body_raises_provider_error(
        self, runtime: BedrockRuntime, client: MagicMock
    ) -> None:
        client.invoke_model.return_value = {"body": io.BytesIO(b"<html>")}

        with pytest.raises(ProviderError, match="anthropic.claude-v2"):
            runtime.invoke("anthropic.claude-v2", {})

    def test_client_error_is_mapped(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        client.invoke_model.side_effect = _client_error("ValidationException", "bad field")

        with pytest.raises(InvalidRequestError, match="bad field") as exc_info:
            runtime.invoke(_MODEL, {})

        assert exc_info.value.provider == "anthropic"
        assert isinstance(exc_info.value.original_error, ClientError)
        assert client.invoke_model.call_count == 1


# ---------------------------------------------------------------------------
# 2. Retry policy
# ---------------------------------------------------------------------------


class TestRetry:
    """Transient failures opening a call are retried; others are not."""

    def test_throttling_then_success(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        client.invoke_model.side_effect = [
            _client_error("ThrottlingException"),
            _client_error("ServiceUnavailableException"),
            {"body": io.BytesIO(b"{}")},
        ]

        with capture_logs() as logs:
            assert runtime.invoke(_MODEL, {}) == {}

        assert client.invoke_model.call_count == 3
        retries = [entry for entry in logs if entry["event"] == "llm_request_retry"]
        assert [entry["attempt"] for entry in retries] == [1, 2]
        assert retries[0]["error_type"] == "RateLimitError"

    def test_gives_up_after_max_retries(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        client.invoke_model.side_effect = _client_error("ThrottlingException")

        with pytest.raises(RateLimitError):
            runtime.invoke(_MODEL, {})

        assert client.invoke_model.call_count == 3

    @pytest.mark.parametrize(
        ("code", "error_type"),
        [("AccessDeniedException", AuthError), ("ValidationException", InvalidRequestError)],
    )
    def test_permanent_errors_not_retried(
        self,
        runtime: BedrockRuntime,
        client: MagicMock,
        code: str,
        error_type: type[ProviderError],
    ) -> None:
        client.invoke_model.side_effect = _client_error(code)

        with pytest.raises(error_type):
            runtime.invoke(_MODEL, {})

        assert client.invoke_model.call_count == 1

    def test_stream_open_is_retried(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        client.invoke_model_with_response_stream.side_effect = [
            _client_error("ModelNotReadyException"),
            {"body": _EventStream([_chunk({"type": "ping"})])},
        ]

        assert list(runtime.stream(_MODEL, {})) == [{"type": "ping"}]
        assert client.invoke_model_with_response_stream.call_count == 2


# ---------------------------------------------------------------------------
# 3. stream()
# ---------------------------------------------------------------------------


class TestStream:
    def test_yields_decoded_events_in_order(
        self, runtime: BedrockRuntime, client: MagicMock, text_events: list[dict[str, Any]]
    ) -> None:
        events = _EventStream([_chunk(event) for event in text_events])
        client.invoke_model_with_response_stream.return_value = {"body": events}

        received = list(runtime.stream(_MODEL, {"messages": []}))

        assert received == text_events
        assert events.closed
        client.invoke_model_with_response_stream.assert_called_once_with(
            modelId=_MODEL,
            body='{"messages": []}',
            contentType="application/json",
            accept="application/json",
        )

    def test_call_is_deferred_until_iteration(
        self, runtime: BedrockRuntime, client: MagicMock
    ) -> None:
        runtime.stream(_MODEL, {})

        client.invoke_model_with_response_stream.assert_not_called()

    def test_exception_event_is_mapped(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        """Modeled exceptions delivered in-stream raise the matching error type."""
        events = _EventStream(
            [
                _chunk({"type": "message_start", "message": {}}),
                {"throttlingException": {"message": "Too many tokens"}},
                _chunk({"type": "message_stop"}),
            ]
        )
        client.invoke_model_with_response_stream.return_value = {"body": events}
        received: list[dict[str, Any]] = []

        with pytest.raises(RateLimitError, match="Too many tokens"):
            for event in runtime.stream(_MODEL, {}):
                received.append(event)

        assert received == [{"type": "message_start", "message": {}}]
        assert events.closed

    def test_undecodable_chunk_raises_malformed_stream(
        self, runtime: BedrockRuntime, client: MagicMock
    ) -> None:
        events = _EventStream([{"chunk": {"bytes": b"{not json"}}])
        client.invoke_model_with_response_stream.return_value = {"body": events}

        with pytest.raises(MalformedStreamError, match="Undecodable stream chunk"):
            list(runtime.stream(_MODEL, {}))

        assert events.closed

    def test_non_utf8_chunk_raises_malformed_stream(
        self, runtime: BedrockRuntime, client: MagicMock
    ) -> None:
        """Invalid UTF-8 in chunk bytes is a malformed stream, not a generic error."""
        events = _EventStream([{"chunk": {"bytes": b'{"text": "\xff"}'}}])
        client.invoke_model_with_response_stream.return_value = {"body": events}

        with pytest.raises(MalformedStreamError, match="Undecodable stream chunk") as exc_info:
            list(runtime.stream(_MODEL, {}))

        assert isinstance(exc_info.value.original_error, UnicodeDecodeError)
        assert events.closed

    def test_event_stream_error_is_mapped(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        """botocore raises EventStreamError (a ClientError) from the iterator."""
        stream = MagicMock()
        stream.__iter__.side_effect = EventStreamError(
            {"Error": {"Code": "modelStreamErrorException", "Message": "stream broke"}},
            "InvokeModelWithResponseStream",
        )
        client.invoke_model_with_response_stream.return_value = {"body": stream}

        with pytest.raises(ProviderUnavailableError, match="stream broke"):
            list(runtime.stream(_MODEL, {}))

        stream.close.assert_called_once()

    def test_abandoned_stream_is_closed(self, runtime: BedrockRuntime, client: MagicMock) -> None:
        events = _EventStream([_chunk({"type": "ping"}), _chunk({"type": "ping"})])
        client.invoke_model_with_response_stream.return_value = {"body": events}

        iterator = runtime.stream(_MODEL, {})
        next(iterator)
        iterator.close()

        assert events.closed

    def test_body_without_close_is_tolerated(
        self, runtime: BedrockRuntime, client: MagicMock
    ) -> None:
        client.invoke_model_with_response_stream.return_value = {"body": [_chunk({"type": "ping"})]}

        assert list(runtime.stream(_MODEL, {})) == [{"type": "ping"}]


# ---------------------------------------------------------------------------
# 4. Error mapping
# ---------------------------------------------------------------------------


class TestMapError:
    @pytest.mark.parametrize(
        ("code", "error_type"),
        [
            ("ThrottlingException", RateLimitError),
            ("ServiceQuotaExceededException", RateLimitError),
            ("AccessDeniedException", AuthError),
            ("UnrecognizedClientException", AuthError),
            ("ExpiredTokenException", AuthError),
            ("ModelTimeoutException", TimeoutError),
            ("ValidationException", InvalidRequestError),
            ("ResourceNotFoundException", InvalidRequestError),
            ("ServiceUnavailableException", ProviderUnavailableError),
            ("InternalServerException", ProviderUnavailableError),
            ("ModelNotReadyException", ProviderUnavailableError),
            ("ModelErrorException", ProviderUnavailableError),
            ("modelStreamErrorException", ProviderUnavailableError),
        ],
    )
    def test_client_error_codes(self, code: str, error_type: type[ProviderError]) -> None:
        error = map_error(_client_error(code), "cohere.command-text-v14")

        assert type(error) is error_type
        assert error.provider == "cohere"

    def test_unknown_code_is_generic(self) -> None:
        error = map_error(_client_error("SomethingNewException"), _MODEL)

        assert type(error) is ProviderError
        assert "SomethingNewException" in error.message

    def test_no_credentials(self) -> None:
        assert isinstance(map_error(NoCredentialsError(), _MODEL), AuthError)

    def test_read_timeout(self) -> None:
        error = map_error(ReadTimeoutError(endpoint_url="https://bedrock"), _MODEL)

        assert isinstance(error, TimeoutError)

    def test_connection_failure(self) -> None:
        error = map_error(EndpointConnectionError(endpoint_url="https://bedrock"), _MODEL)

        assert isinstance(error, ProviderUnavailableError)

    def test_provider_error_passes_through(self) -> None:
        original = MalformedStreamError("bad")

        assert map_error(original, _MODEL) is original

    def test_anything_else(self) -> None:
        cause = RuntimeError("weird")

        error = map_error(cause, _MODEL)

        assert type(error) is ProviderError
        assert error.original_error is cause


# ---------------------------------------------------------------------------
# 5. Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_default_client_disables_botocore_retries(self, mocker: MockerFixture) -> None:
        boto_client = mocker.patch("bedrockbridge.llm.runtime.boto3.client")

        BedrockRuntime(region_name="eu-west-1", read_timeout=15)

        args, kwargs = boto_client.call_args
        assert args == ("bedrock-runtime",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["config"].read_timeout == 15
        assert kwargs["config"].retries == {"max_attempts": 1}

    def test_from_settings_passes_credentials(self, mocker: MockerFixture) -> None:
        boto_client = mocker.patch("bedrockbridge.llm.runtime.boto3.client")
        settings = Settings(
            _env_file=None,
            aws_region="us-west-2",
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
            request_timeout=30,
        )

        BedrockRuntime.from_settings(settings)

        kwargs = boto_client.call_args.kwargs
        assert kwargs["region_name"] == "us-west-2"
        assert kwargs["aws_access_key_id"] == "AKIA"
        assert kwargs["aws_secret_access_key"] == "secret"
        assert "aws_session_token" not in kwargs
        assert kwargs["config"].read_timeout == 30
