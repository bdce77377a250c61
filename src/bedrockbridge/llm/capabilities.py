"""Provider capability table.

Bedrock model ids are namespaced by vendor (``anthropic.claude-v2``,
``cohere.command-text-v14``).  The namespace decides which request and
response shape applies, and this table decides which operations each
namespace may be used for.
"""

from enum import StrEnum

from bedrockbridge.llm.errors import UnsupportedProviderError


class Provider(StrEnum):
    ANTHROPIC = "anthropic"
    COHERE = "cohere"
    AI21 = "ai21"
    AMAZON = "amazon"


class Operation(StrEnum):
    COMPLETION = "completion"
    CHAT = "chat"
    EMBEDDING = "embedding"


SUPPORTED_PROVIDERS: dict[Operation, frozenset[Provider]] = {
    Operation.COMPLETION: frozenset({Provider.ANTHROPIC, Provider.COHERE, Provider.AI21}),
    Operation.CHAT: frozenset({Provider.ANTHROPIC}),
    Operation.EMBEDDING: frozenset({Provider.AMAZON}),
}

# Cross-region inference profiles prepend a geography to the model id.
_INFERENCE_PROFILE_PREFIXES: frozenset[str] = frozenset({"us", "eu", "apac", "global"})

# Model families that only speak the Messages API.
CHAT_ONLY_MARKERS: tuple[str, ...] = (
    "claude-3",
    "claude-opus-4",
    "claude-sonnet-4",
    "claude-haiku-4",
)


def supports(operation: Operation | str, provider: Provider | str) -> bool:
    """Return ``True`` when *provider* is registered for *operation*."""
    try:
        return Provider(provider) in SUPPORTED_PROVIDERS[Operation(operation)]
    except ValueError:
        return False


def ensure_supported(operation: Operation | str, provider: Provider | str) -> None:
    """Raise :class:`UnsupportedProviderError` unless *provider* supports *operation*."""
    if not supports(operation, provider):
        raise UnsupportedProviderError(
            f"{operation} provider {provider} is not supported.",
            provider=str(provider),
        )


def namespace_of(model_id: str) -> str:
    """Return the vendor namespace of a Bedrock model id.

    ``"anthropic.claude-v2"`` gives ``"anthropic"`` and
    ``"us.anthropic.claude-3-haiku-20240307-v1:0"`` gives ``"anthropic"``.
    """
    segments = model_id.split(".")
    if len(segments) > 2 and segments[0] in _INFERENCE_PROFILE_PREFIXES:
        return segments[1]
    return segments[0]


def provider_for(model_id: str) -> Provider:
    """Derive the :class:`Provider` for *model_id*.

    Raises:
        UnsupportedProviderError: The namespace is not a known provider.
    """
    namespace = namespace_of(model_id)
    try:
        return Provider(namespace)
    except ValueError:
        raise UnsupportedProviderError(
            f"Model {model_id} belongs to unknown provider {namespace!r}.",
            provider=namespace,
        ) from None


def is_chat_only(model_id: str) -> bool:
    return any(marker in model_id for marker in CHAT_ONLY_MARKERS)
