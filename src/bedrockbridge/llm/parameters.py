"""Canonical, provider-agnostic request parameters.

A :class:`CanonicalParameters` instance is built once per client from the
configured defaults and then merged with per-call overrides.  Merging never
mutates the receiver; every call gets its own instance.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from bedrockbridge.llm.errors import InvalidRequestError

PENALTY_KEYS: tuple[str, ...] = (
    "scale",
    "apply_to_whitespaces",
    "apply_to_punctuations",
    "apply_to_numbers",
    "apply_to_stopwords",
    "apply_to_emojis",
)

_PENALTY_FIELDS = ("count_penalty", "presence_penalty", "frequency_penalty")


@dataclass(frozen=True)
class PenaltySettings:
    """One AI21-style repetition penalty.

    Always complete: a penalty is sent as a whole sub-object, so overrides
    replace it wholesale instead of patching individual flags.
    """

    scale: float = 0
    apply_to_whitespaces: bool = False
    apply_to_punctuations: bool = False
    apply_to_numbers: bool = False
    apply_to_stopwords: bool = False
    apply_to_emojis: bool = False

    @classmethod
    def from_value(cls, name: str, value: "PenaltySettings | Mapping[str, Any]") -> "PenaltySettings":
        """Coerce *value* into a :class:`PenaltySettings`.

        Raises:
            InvalidRequestError: *value* is a mapping with missing or unknown keys.
        """
        if isinstance(value, PenaltySettings):
            return value
        if not isinstance(value, Mapping):
            raise InvalidRequestError(
                f"{name} must be a mapping or PenaltySettings, got {type(value).__name__}"
            )
        missing = [key for key in PENALTY_KEYS if key not in value]
        unknown = sorted(set(value) - set(PENALTY_KEYS))
        if missing or unknown:
            raise InvalidRequestError(
                f"{name} must be a complete penalty object; "
                f"missing={missing} unknown={unknown}"
            )
        return cls(**{key: value[key] for key in PENALTY_KEYS})


@dataclass(frozen=True)
class CanonicalParameters:
    """Sampling and control options shared by every provider.

    Field names are stable across providers; the adapters rename them to each
    provider's wire format.

    Args:
        completion_model_name: Bedrock model id used by ``complete``.
        embedding_model_name: Bedrock model id used by ``embed``.
        chat_completion_model_name: Bedrock model id used by ``chat`` when the
            call does not name one.
        max_tokens_to_sample: Generation length limit.
        temperature: Sampling temperature.
        top_k: Sample from the K most likely tokens.
        top_p: Nucleus sampling mass.
        stop_sequences: Sequences that end generation.
        anthropic_version: Messages protocol version sent to Anthropic models.
        return_likelihoods: Cohere token-likelihood reporting mode.
        count_penalty: AI21 count penalty.
        presence_penalty: AI21 presence penalty.
        frequency_penalty: AI21 frequency penalty.
    """

    completion_model_name: str = "anthropic.claude-v2"
    embedding_model_name: str = "amazon.titan-embed-text-v1"
    chat_completion_model_name: str = "anthropic.claude-3-sonnet-20240229-v1:0"
    max_tokens_to_sample: int = 300
    temperature: float = 1
    top_k: int = 250
    top_p: float = 0.999
    stop_sequences: tuple[str, ...] = ("\n\nHuman:",)
    anthropic_version: str = "bedrock-2023-05-31"
    return_likelihoods: str = "NONE"
    count_penalty: PenaltySettings = field(default_factory=PenaltySettings)
    presence_penalty: PenaltySettings = field(default_factory=PenaltySettings)
    frequency_penalty: PenaltySettings = field(default_factory=PenaltySettings)

    def merge(self, overrides: Mapping[str, Any] | None = None, **kwargs: Any) -> "CanonicalParameters":
        """Return a copy with *overrides* applied key by key.

        Override values win.  Keys whose value is ``None`` are skipped so an
        unset caller option falls back to the configured default.

        Raises:
            InvalidRequestError: An override names an unknown parameter or
                carries an incomplete penalty object.
        """
        merged = {**(overrides or {}), **kwargs}
        changes = {key: value for key, value in merged.items() if value is not None}
        if not changes:
            return self

        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise InvalidRequestError(f"Unknown parameter(s): {', '.join(unknown)}")

        for name in _PENALTY_FIELDS:
            if name in changes:
                changes[name] = PenaltySettings.from_value(name, changes[name])
        if "stop_sequences" in changes:
            stop = changes["stop_sequences"]
            changes["stop_sequences"] = (stop,) if isinstance(stop, str) else tuple(stop)

        return replace(self, **changes)
