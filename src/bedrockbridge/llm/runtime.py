"""Bedrock runtime transport.

Thin wrapper over the boto3 ``bedrock-runtime`` client.  It adds what the
SDK call sites need and botocore does not provide:

* JSON request encoding and response / stream-chunk decoding
* Typed exception mapping (:mod:`bedrockbridge.llm.errors`)
* Exponential-backoff retry (tenacity) of the connection attempt on
  transient failures only
"""

import json
from collections.abc import Iterator, Mapping
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    NoCredentialsError,
    ReadTimeoutError,
)
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bedrockbridge.config import Settings
from bedrockbridge.llm.capabilities import namespace_of
from bedrockbridge.llm.errors import (
    AuthError,
    InvalidRequestError,
    MalformedStreamError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TimeoutError,
)

_log = structlog.get_logger(__name__)

CONTENT_TYPE = "application/json"

_RATE_LIMIT_CODES = frozenset({"ThrottlingException", "ServiceQuotaExceededException"})
_AUTH_CODES = frozenset(
    {"AccessDeniedException", "UnrecognizedClientException", "ExpiredTokenException"}
)
_TIMEOUT_CODES = frozenset({"ModelTimeoutException"})
_INVALID_CODES = frozenset({"ValidationException", "ResourceNotFoundException"})
_UNAVAILABLE_CODES = frozenset(
    {
        "ServiceUnavailableException",
        "InternalServerException",
        "ModelNotReadyException",
        "ModelErrorException",
        "ModelStreamErrorException",
    }
)

_RETRYABLE = (RateLimitError, TimeoutError, ProviderUnavailableError)


def _before_sleep(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` hook that emits a structured warning."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    next_action = retry_state.next_action
    wait_seconds = next_action.sleep if next_action is not None else 0.0
    _log.warning(
        "llm_request_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=round(wait_seconds, 2),
        error_type=type(exc).__name__ if exc else None,
        error=str(exc) if exc else None,
    )


def _error_code(code: str) -> str:
    # Stream events name exceptions in camelCase ("throttlingException").
    return code[:1].upper() + code[1:]


def map_error(error: Exception, model_id: str) -> ProviderError:
    """Map a botocore exception to a typed :class:`ProviderError`.

    ``ClientError`` (including ``EventStreamError`` raised mid-stream) is
    classified by its AWS error code; connection-level ``BotoCoreError``
    subclasses are classified by type.  Anything unrecognised becomes a plain
    :class:`ProviderError`.
    """
    if isinstance(error, ProviderError):
        return error

    provider = namespace_of(model_id) if model_id else None

    if isinstance(error, ClientError):
        code = _error_code(error.response.get("Error", {}).get("Code", ""))
        message = error.response.get("Error", {}).get("Message") or str(error)
        if code in _RATE_LIMIT_CODES:
            return RateLimitError(
                f"Bedrock throttled {model_id}: {message}",
                provider=provider,
                original_error=error,
            )
        if code in _AUTH_CODES:
            return AuthError(
                f"Authentication failed for {model_id}: {message}",
                provider=provider,
                original_error=error,
            )
        if code in _TIMEOUT_CODES:
            return TimeoutError(
                f"Request to {model_id} timed out: {message}",
                provider=provider,
                original_error=error,
            )
        if code in _INVALID_CODES:
            return InvalidRequestError(
                f"Invalid request to {model_id}: {message}",
                provider=provider,
                original_error=error,
            )
        if code in _UNAVAILABLE_CODES:
            return ProviderUnavailableError(
                f"{model_id} is unavailable: {message}",
                provider=provider,
                original_error=error,
            )
        return ProviderError(
            f"Unexpected {code or 'error'} from {model_id}: {message}",
            provider=provider,
            original_error=error,
        )

    if isinstance(error, NoCredentialsError):
        return AuthError(f"No AWS credentials found: {error}", provider=provider, original_error=error)

    if isinstance(error, ReadTimeoutError | ConnectTimeoutError):
        return TimeoutError(
            f"Request to {model_id} timed out: {error}", provider=provider, original_error=error
        )

    if isinstance(error, BotoCoreError):
        return ProviderUnavailableError(
            f"Bedrock endpoint unreachable for {model_id}: {error}",
            provider=provider,
            original_error=error,
        )

    return ProviderError(
        f"Unexpected error from {model_id}: {error}", provider=provider, original_error=error
    )


def _event_error(event: Mapping[str, Any], model_id: str) -> ProviderError:
    """Build the error for a stream event that carries a modeled exception."""
    key = next(iter(event))
    detail = event[key] or {}
    error = ClientError(
        {"Error": {"Code": _error_code(key), "Message": detail.get("message", "")}},
        "InvokeModelWithResponseStream",
    )
    return map_error(error, model_id)


class BedrockRuntime:
    """Synchronous and streaming ``InvokeModel`` calls with JSON bodies.

    Example::

        runtime = BedrockRuntime(region_name="us-east-1")
        payload = runtime.invoke("cohere.command-text-v14", {"prompt": "Hi"})
        for event in runtime.stream(
            "anthropic.claude-3-haiku-20240307-v1:0",
            {"anthropic_version": "bedrock-2023-05-31", "max_tokens": 64, "messages": [...]},
        ):
            print(event["type"])

    Args:
        client: A ``bedrock-runtime`` client.  Built with boto3 when omitted.
        region_name: AWS region for the default client.
        endpoint_url: Endpoint override for the default client.
        read_timeout: Socket read timeout in seconds for the default client.
        max_retries: Maximum attempts for transient failures.  Only
            :class:`RateLimitError`, :class:`TimeoutError` and
            :class:`ProviderUnavailableError` raised while *opening* a call
            are retried; an interrupted stream is never resumed.
        backoff_min: Lower bound of the exponential wait, in seconds.
        backoff_max: Upper bound of the exponential wait, in seconds.
        client_options: Extra keyword arguments for ``boto3.client``, such as
            explicit credentials.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        read_timeout: int = 60,
        max_retries: int = 3,
        backoff_min: float = 2.0,
        backoff_max: float = 30.0,
        client_options: Mapping[str, Any] | None = None,
    ) -> None:
        if client is None:
            client = boto3.client(
                "bedrock-runtime",
                region_name=region_name,
                endpoint_url=endpoint_url,
                **(client_options or {}),
                # Retries are owned by tenacity below.
                config=Config(read_timeout=read_timeout, retries={"max_attempts": 1}),
            )
        self._client = client
        self._max_retries = max_retries
        self._backoff_min = backoff_min
        self._backoff_max = backoff_max

    @classmethod
    def from_settings(cls, settings: Settings) -> "BedrockRuntime":
        return cls(
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            read_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            client_options=settings.client_options(),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def invoke(self, model_id: str, body: Mapping[str, Any]) -> dict[str, Any]:
        """Invoke *model_id* once and return the decoded response body."""
        response = self._call(
            self._client.invoke_model,
            model_id,
            modelId=model_id,
            body=json.dumps(body),
            contentType=CONTENT_TYPE,
            accept=CONTENT_TYPE,
        )
        try:
            return json.loads(response["body"].read())
        except Exception as exc:
            raise map_error(exc, model_id) from exc

    def stream(self, model_id: str, body: Mapping[str, Any]) -> Iterator[dict[str, Any]]:
        """Invoke *model_id* with a response stream and yield decoded events in order.

        The underlying event stream is closed when iteration stops, whether
        it ran to completion, failed, or was abandoned by the caller.
        """
        response = self._call(
            self._client.invoke_model_with_response_stream,
            model_id,
            modelId=model_id,
            body=json.dumps(body),
            contentType=CONTENT_TYPE,
            accept=CONTENT_TYPE,
        )
        event_stream = response["body"]
        try:
            for event in event_stream:
                if "chunk" in event:
                    yield json.loads(event["chunk"]["bytes"])
                elif event:
                    raise _event_error(event, model_id)
        except ProviderError:
            raise
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedStreamError(
                f"Undecodable stream chunk from {model_id}: {exc}",
                provider=namespace_of(model_id),
                original_error=exc,
            ) from exc
        except Exception as exc:
            raise map_error(exc, model_id) from exc
        finally:
            close = getattr(event_stream, "close", None)
            if close is not None:
                close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _call(self, operation: Any, model_id: str, **kwargs: Any) -> Any:
        """Run a client *operation* with exponential-backoff retry.

        Errors are mapped before tenacity evaluates them so the retry
        predicate matches on the typed errors.
        """
        for attempt in Retrying(
            stop=stop_after_attempt(self._max_retries),
            retry=retry_if_exception_type(_RETRYABLE),
            wait=wait_exponential(multiplier=1, min=self._backoff_min, max=self._backoff_max),
            before_sleep=_before_sleep,
            reraise=True,
        ):
            with attempt:
                try:
                    return operation(**kwargs)
                except Exception as exc:
                    raise map_error(exc, model_id) from exc
