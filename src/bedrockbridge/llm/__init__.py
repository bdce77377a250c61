"""Unified access to the text models hosted on Amazon Bedrock.

Public surface area for the llm package.  Import from here rather than from
the individual submodules so internal structure can change freely.

Example::

    from bedrockbridge.llm import BedrockLLM, InvalidRequestError

    llm = BedrockLLM(chat_model="anthropic.claude-3-haiku-20240307-v1:0")
    response = llm.chat(
        {"messages": [{"role": "user", "content": "Hello"}]},
        on_chunk=lambda event: print(event),
    )
    print(response.chat_completion, response.stop_reason)
"""

from bedrockbridge.llm.adapters import normalize, parse_response
from bedrockbridge.llm.capabilities import Operation, Provider, provider_for, supports
from bedrockbridge.llm.client import BedrockLLM
from bedrockbridge.llm.errors import (
    AuthError,
    InvalidRequestError,
    MalformedStreamError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TimeoutError,
    UnsupportedModelError,
    UnsupportedProviderError,
)
from bedrockbridge.llm.parameters import CanonicalParameters, PenaltySettings
from bedrockbridge.llm.reassembler import ReassemblyState, apply_event, finalize, reassemble
from bedrockbridge.llm.responses import (
    AI21Response,
    AnthropicResponse,
    CohereResponse,
    LLMResponse,
    TitanEmbeddingResponse,
)
from bedrockbridge.llm.runtime import BedrockRuntime

__all__ = [
    # Client
    "BedrockLLM",
    "BedrockRuntime",
    # Parameters
    "CanonicalParameters",
    "PenaltySettings",
    "Operation",
    "Provider",
    "provider_for",
    "supports",
    "normalize",
    "parse_response",
    # Streaming
    "ReassemblyState",
    "apply_event",
    "finalize",
    "reassemble",
    # Responses
    "LLMResponse",
    "AnthropicResponse",
    "CohereResponse",
    "AI21Response",
    "TitanEmbeddingResponse",
    # Errors
    "ProviderError",
    "UnsupportedProviderError",
    "UnsupportedModelError",
    "InvalidRequestError",
    "MalformedStreamError",
    "RateLimitError",
    "AuthError",
    "TimeoutError",
    "ProviderUnavailableError",
]
