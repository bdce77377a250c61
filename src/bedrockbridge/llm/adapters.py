"""Per-provider request normalization and response parsing.

Every Bedrock vendor namespace gets one :class:`ProviderAdapter` subclass
that knows its wire field names, prompt convention and response wrapper.
Adding a provider means adding an adapter and registering it in
:data:`ADAPTERS`; nothing else branches on the provider.
"""

from collections.abc import Mapping
from typing import Any, ClassVar

import structlog

from bedrockbridge.llm.capabilities import (
    Operation,
    Provider,
    ensure_supported,
    is_chat_only,
)
from bedrockbridge.llm.errors import (
    InvalidRequestError,
    UnsupportedModelError,
    UnsupportedProviderError,
)
from bedrockbridge.llm.parameters import CanonicalParameters, PenaltySettings
from bedrockbridge.llm.responses import (
    AI21Response,
    AnthropicResponse,
    CohereResponse,
    LLMResponse,
    TitanEmbeddingResponse,
)

_log = structlog.get_logger(__name__)

WirePayload = dict[str, Any]


def require_messages(request: Mapping[str, Any]) -> None:
    """Raise :class:`InvalidRequestError` unless ``messages`` is a non-empty list."""
    messages = request.get("messages")
    if not messages or isinstance(messages, (str, bytes, Mapping)):
        raise InvalidRequestError("messages argument is required")


class ProviderAdapter:
    """Request/response rules for one Bedrock vendor namespace.

    Operations a provider does not offer raise
    :class:`UnsupportedProviderError`; :func:`normalize` checks the capability
    table first, so these are only reached when an adapter is used directly.
    """

    provider: ClassVar[Provider]
    response_type: ClassVar[type[LLMResponse]]

    def wrap_prompt(self, prompt: str) -> str:
        return prompt

    def completion_body(self, params: CanonicalParameters, prompt: str) -> WirePayload:
        raise self._unsupported(Operation.COMPLETION)

    def chat_body(self, params: CanonicalParameters, request: Mapping[str, Any]) -> WirePayload:
        raise self._unsupported(Operation.CHAT)

    def embedding_body(
        self, params: CanonicalParameters, text: str, extra: Mapping[str, Any]
    ) -> WirePayload:
        raise self._unsupported(Operation.EMBEDDING)

    def parse(self, payload: Mapping[str, Any]) -> LLMResponse:
        return self.response_type(payload)

    def _unsupported(self, operation: Operation) -> UnsupportedProviderError:
        return UnsupportedProviderError(
            f"{operation} provider {self.provider} is not supported.",
            provider=self.provider,
        )


class AnthropicAdapter(ProviderAdapter):
    """Claude models: legacy text completions and the Messages API."""

    provider = Provider.ANTHROPIC
    response_type = AnthropicResponse

    CHAT_KEYS: ClassVar[frozenset[str]] = frozenset(
        {
            "messages",
            "model",
            "system",
            "max_tokens",
            "temperature",
            "top_p",
            "top_k",
            "stop_sequences",
            "tools",
            "tool_choice",
            "metadata",
            "anthropic_version",
        }
    )
    IGNORED_CHAT_KEYS: ClassVar[frozenset[str]] = frozenset({"n", "user"})
    CHAT_RENAMES: ClassVar[dict[str, str]] = {"stop": "stop_sequences"}

    def wrap_prompt(self, prompt: str) -> str:
        return f"\n\nHuman: {prompt}\n\nAssistant:"

    def completion_body(self, params: CanonicalParameters, prompt: str) -> WirePayload:
        return {
            "max_tokens_to_sample": params.max_tokens_to_sample,
            "temperature": params.temperature,
            "top_k": params.top_k,
            "top_p": params.top_p,
            "stop_sequences": list(params.stop_sequences),
            "anthropic_version": params.anthropic_version,
            "prompt": self.wrap_prompt(prompt),
        }

    def chat_body(self, params: CanonicalParameters, request: Mapping[str, Any]) -> WirePayload:
        """Build a Messages API body, ``model`` included.

        Use :func:`split_model` to separate the model id from the body that is
        actually sent.
        """
        require_messages(request)
        body = {key: value for key, value in request.items() if key not in self.IGNORED_CHAT_KEYS}

        for old, new in self.CHAT_RENAMES.items():
            if old in body:
                value = body.pop(old)
                if body.get(new) is None:
                    body[new] = value

        dropped = sorted(set(body) - self.CHAT_KEYS)
        if dropped:
            _log.debug("chat_params_dropped", provider=self.provider.value, params=dropped)

        defaults = {
            "model": params.chat_completion_model_name,
            "max_tokens": params.max_tokens_to_sample,
            "anthropic_version": params.anthropic_version,
        }
        for key, default in defaults.items():
            if body.get(key) is None:
                body[key] = default

        return {
            key: value
            for key, value in body.items()
            if key in self.CHAT_KEYS and value is not None
        }


class CohereAdapter(ProviderAdapter):
    """Cohere Command text generation."""

    provider = Provider.COHERE
    response_type = CohereResponse

    def completion_body(self, params: CanonicalParameters, prompt: str) -> WirePayload:
        return {
            "max_tokens": params.max_tokens_to_sample,
            "temperature": params.temperature,
            "p": params.top_p,
            "k": params.top_k,
            "stop_sequences": list(params.stop_sequences),
            "return_likelihoods": params.return_likelihoods,
            "prompt": self.wrap_prompt(prompt),
        }


class AI21Adapter(ProviderAdapter):
    """AI21 Jurassic: camelCase fields and nested penalty objects."""

    provider = Provider.AI21
    response_type = AI21Response

    @staticmethod
    def _penalty(penalty: PenaltySettings) -> dict[str, Any]:
        return {
            "scale": penalty.scale,
            "applyToWhitespaces": penalty.apply_to_whitespaces,
            "applyToPunctuations": penalty.apply_to_punctuations,
            "applyToNumbers": penalty.apply_to_numbers,
            "applyToStopwords": penalty.apply_to_stopwords,
            "applyToEmojis": penalty.apply_to_emojis,
        }

    def completion_body(self, params: CanonicalParameters, prompt: str) -> WirePayload:
        return {
            "maxTokens": params.max_tokens_to_sample,
            "temperature": params.temperature,
            "topP": params.top_p,
            "stopSequences": list(params.stop_sequences),
            "countPenalty": self._penalty(params.count_penalty),
            "presencePenalty": self._penalty(params.presence_penalty),
            "frequencyPenalty": self._penalty(params.frequency_penalty),
            "prompt": self.wrap_prompt(prompt),
        }


class AmazonAdapter(ProviderAdapter):
    """Amazon Titan embeddings."""

    provider = Provider.AMAZON
    response_type = TitanEmbeddingResponse

    def embedding_body(
        self, params: CanonicalParameters, text: str, extra: Mapping[str, Any]
    ) -> WirePayload:
        return {"inputText": text, **extra}


ADAPTERS: dict[Provider, ProviderAdapter] = {
    adapter.provider: adapter
    for adapter in (AnthropicAdapter(), CohereAdapter(), AI21Adapter(), AmazonAdapter())
}


def adapter_for(provider: Provider | str) -> ProviderAdapter:
    """Return the registered adapter for *provider*.

    Raises:
        UnsupportedProviderError: No adapter is registered for *provider*.
    """
    try:
        return ADAPTERS[Provider(provider)]
    except (KeyError, ValueError):
        raise UnsupportedProviderError(
            f"No adapter registered for provider {provider}.", provider=str(provider)
        ) from None


def normalize(
    params: CanonicalParameters,
    provider: Provider | str,
    operation: Operation | str,
    request: Any = None,
) -> WirePayload:
    """Produce the wire payload for *provider* and *operation*.

    Args:
        params: Canonical parameters for this call (defaults already merged).
        provider: Target provider namespace.
        operation: One of ``completion``, ``chat`` or ``embedding``.
        request: The operation input: the prompt text for ``completion``, the
            unified chat mapping for ``chat``, or a ``(text, extra_params)``
            pair for ``embedding``.

    Returns:
        A fresh ``dict`` ready for JSON encoding.  For ``chat`` it still
        carries ``model``; see :func:`split_model`.

    Raises:
        UnsupportedProviderError: *provider* does not offer *operation*.
        UnsupportedModelError: A chat-only model was configured for
            ``completion``.
        InvalidRequestError: ``chat`` was called without messages.
    """
    ensure_supported(operation, provider)
    operation = Operation(operation)
    adapter = adapter_for(provider)

    if operation is Operation.COMPLETION:
        if is_chat_only(params.completion_model_name):
            raise UnsupportedModelError(
                f"Model {params.completion_model_name} only supports chat.",
                provider=adapter.provider,
            )
        return adapter.completion_body(params, request)

    if operation is Operation.CHAT:
        return adapter.chat_body(params, request or {})

    text, extra = request
    return adapter.embedding_body(params, text, extra or {})


def split_model(payload: WirePayload) -> tuple[str, WirePayload]:
    """Split a chat payload into the Bedrock ``modelId`` and the request body."""
    body = {key: value for key, value in payload.items() if key != "model"}
    return payload["model"], body


def parse_response(payload: Mapping[str, Any], provider: Provider | str) -> LLMResponse:
    """Wrap a decoded response in the provider's typed response.

    Raises:
        UnsupportedProviderError: No wrapper is registered for *provider*.
    """
    return adapter_for(provider).parse(payload)
