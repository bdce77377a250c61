"""Caller-facing response wrappers.

Each wrapper holds the decoded Bedrock payload verbatim in ``raw`` and adds
read-only accessors for the provider's layout.  Nothing is copied or
reshaped at construction time.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class LLMResponse:
    """Base wrapper around a decoded response body.

    Attributes:
        raw: The decoded payload, or the frozen structure produced by the
            stream reassembler.
    """

    raw: Mapping[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable, JSON-encodable deep copy of ``raw``.

        Streamed responses hold read-only mappings and tuples; this gives them
        the same dict-and-list shape a single-shot response decodes to.
        """
        return _thaw(self.raw)

    @property
    def completion(self) -> str | None:
        return None

    @property
    def prompt_tokens(self) -> int | None:
        return None

    @property
    def completion_tokens(self) -> int | None:
        return None

    @property
    def total_tokens(self) -> int | None:
        if self.prompt_tokens is None or self.completion_tokens is None:
            return None
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class AnthropicResponse(LLMResponse):
    """Anthropic text-completion or Messages API response."""

    @property
    def model(self) -> str | None:
        return self.raw.get("model")

    @property
    def role(self) -> str | None:
        return self.raw.get("role")

    @property
    def content(self) -> Sequence[Mapping[str, Any]]:
        return self.raw.get("content") or ()

    @property
    def completion(self) -> str | None:
        """Text of a legacy ``prompt``-style completion."""
        return self.raw.get("completion")

    @property
    def chat_completion(self) -> str:
        """Concatenated text of every ``text`` content block."""
        return "".join(
            block.get("text", "") for block in self.content if block.get("type") == "text"
        )

    @property
    def tool_calls(self) -> list[Mapping[str, Any]]:
        return [block for block in self.content if block.get("type") == "tool_use"]

    @property
    def stop_reason(self) -> str | None:
        return self.raw.get("stop_reason")

    @property
    def stop_sequence(self) -> str | None:
        return self.raw.get("stop_sequence")

    @property
    def prompt_tokens(self) -> int | None:
        return (self.raw.get("usage") or {}).get("input_tokens")

    @property
    def completion_tokens(self) -> int | None:
        return (self.raw.get("usage") or {}).get("output_tokens")


@dataclass(frozen=True)
class CohereResponse(LLMResponse):
    """Cohere Command generation response."""

    @property
    def completions(self) -> Sequence[Mapping[str, Any]]:
        return self.raw.get("generations") or ()

    @property
    def completion(self) -> str | None:
        return self.completions[0].get("text") if self.completions else None

    @property
    def stop_reason(self) -> str | None:
        return self.completions[0].get("finish_reason") if self.completions else None


@dataclass(frozen=True)
class AI21Response(LLMResponse):
    """AI21 Jurassic completion response."""

    @property
    def completions(self) -> Sequence[Mapping[str, Any]]:
        return self.raw.get("completions") or ()

    @property
    def completion(self) -> str | None:
        if not self.completions:
            return None
        return (self.completions[0].get("data") or {}).get("text")

    @property
    def stop_reason(self) -> str | None:
        if not self.completions:
            return None
        return (self.completions[0].get("finishReason") or {}).get("reason")

    @property
    def prompt_tokens(self) -> int | None:
        tokens = (self.raw.get("prompt") or {}).get("tokens")
        return len(tokens) if tokens is not None else None


@dataclass(frozen=True)
class TitanEmbeddingResponse(LLMResponse):
    """Amazon Titan embedding response."""

    @property
    def embedding(self) -> list[float]:
        return self.raw.get("embedding") or []

    @property
    def embeddings(self) -> list[list[float]]:
        return [self.embedding]

    @property
    def prompt_tokens(self) -> int | None:
        return self.raw.get("inputTextTokenCount")
