"""Exception hierarchy for bedrockbridge.

Validation failures, stream reassembly faults and Bedrock transport errors
all surface as one of these types so callers never have to inspect botocore
internals.
"""


class ProviderError(Exception):
    """Base exception for all bedrockbridge errors.

    Attributes:
        message: Human-readable error description.
        provider: Provider namespace (e.g. "anthropic", "ai21").  ``None`` when
            the provider could not be determined.
        original_error: The upstream exception that caused this error, if any.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class UnsupportedProviderError(ProviderError):
    """Raised when an operation is requested against a provider that lacks it."""


class UnsupportedModelError(ProviderError):
    """Raised when the configured model cannot serve the requested operation.

    The typical case is a chat-only model (Claude 3 and later) used for a
    single-shot text completion.
    """


class InvalidRequestError(ProviderError, ValueError):
    """Raised for requests rejected as malformed, locally or by Bedrock.

    Local validation (empty ``messages``, unknown override keys, incomplete
    penalty objects) raises this before any network call is made.
    """


class MalformedStreamError(ProviderError):
    """Raised when a streamed response cannot be reassembled.

    Covers tool-input fragments that do not parse as JSON, deltas addressed to
    a content block that was never started, and streams that end before a
    ``message_start`` event.
    """


class RateLimitError(ProviderError):
    """Raised when Bedrock throttles the request."""


class AuthError(ProviderError):
    """Raised for credential or authorisation failures."""


class TimeoutError(ProviderError):  # noqa: A001
    """Raised when the model or the connection exceeds its timeout."""


class ProviderUnavailableError(ProviderError):
    """Raised when the model or the endpoint is down or unreachable."""
