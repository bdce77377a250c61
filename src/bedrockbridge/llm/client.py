"""Unified completion, chat and embedding calls against Amazon Bedrock.

:class:`BedrockLLM` resolves the provider from the configured model id,
normalizes the caller's parameters for that provider, invokes the model
through :class:`~bedrockbridge.llm.runtime.BedrockRuntime` and wraps the
result in the provider's typed response.  Each call gets an OpenTelemetry
span and structured log events bound to a per-call request id.
"""

import time
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import StatusCode

from bedrockbridge.config import Settings
from bedrockbridge.config import settings as default_settings
from bedrockbridge.llm.adapters import normalize, parse_response, require_messages, split_model
from bedrockbridge.llm.capabilities import Operation, ensure_supported, is_chat_only, provider_for
from bedrockbridge.llm.errors import ProviderError, UnsupportedModelError
from bedrockbridge.llm.parameters import CanonicalParameters
from bedrockbridge.llm.reassembler import ReassemblyState, StreamEvent, apply_event, finalize
from bedrockbridge.llm.responses import AnthropicResponse, LLMResponse, TitanEmbeddingResponse
from bedrockbridge.llm.runtime import BedrockRuntime

_log = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)


class BedrockLLM:
    """One client, several Bedrock model vendors.

    Example::

        llm = BedrockLLM(completion_model="cohere.command-text-v14")
        print(llm.complete("Write a haiku about rain").completion)

        response = llm.chat(
            {"messages": [{"role": "user", "content": "Hello"}]},
            on_chunk=lambda event: print(event["type"]),
        )
        print(response.chat_completion)

    Args:
        completion_model: Model id for :meth:`complete`.
        embedding_model: Model id for :meth:`embed`.
        chat_model: Default model id for :meth:`chat`.
        default_options: Canonical parameter overrides applied to every call
            made by this client (e.g. ``{"temperature": 0.2}``).
        runtime: Transport to use.  Built from *settings* when omitted.
        settings: Configuration source; the module-level settings by default.
    """

    def __init__(
        self,
        completion_model: str | None = None,
        embedding_model: str | None = None,
        chat_model: str | None = None,
        default_options: Mapping[str, Any] | None = None,
        runtime: BedrockRuntime | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or default_settings
        self.defaults = (
            CanonicalParameters(
                completion_model_name=settings.completion_model_name,
                embedding_model_name=settings.embedding_model_name,
                chat_completion_model_name=settings.chat_completion_model_name,
            )
            .merge(default_options)
            .merge(
                completion_model_name=completion_model,
                embedding_model_name=embedding_model,
                chat_completion_model_name=chat_model,
            )
        )
        self._runtime = runtime or BedrockRuntime.from_settings(settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed(self, text: str, **params: Any) -> TitanEmbeddingResponse:
        """Generate an embedding for *text*.

        Args:
            text: Input text.
            **params: Extra body fields passed through to the embedding model
                (e.g. ``dimensions`` for Titan v2).

        Raises:
            UnsupportedProviderError: The embedding model's provider does not
                offer embeddings.
        """
        model_id = self.defaults.embedding_model_name
        with self._request(Operation.EMBEDDING, model_id) as (span, log):
            provider = provider_for(model_id)
            body = normalize(self.defaults, provider, Operation.EMBEDDING, (text, params))
            payload = self._runtime.invoke(model_id, body)
            response = parse_response(payload, provider)
            if response.prompt_tokens is not None:
                span.set_attribute("gen_ai.usage.input_tokens", response.prompt_tokens)
            return response

    def complete(self, prompt: str, **params: Any) -> LLMResponse:
        """Generate a single-shot completion for *prompt*.

        Args:
            prompt: Plain prompt text; wrapped per provider convention.
            **params: Canonical parameter overrides for this call only.

        Returns:
            :class:`AnthropicResponse`, :class:`CohereResponse` or
            :class:`AI21Response` depending on the completion model.

        Raises:
            UnsupportedProviderError: The completion model's provider does not
                offer text completions.
            UnsupportedModelError: The completion model is chat-only.
            InvalidRequestError: *params* names an unknown parameter.
        """
        model_id = params.get("completion_model_name") or self.defaults.completion_model_name
        with self._request(Operation.COMPLETION, model_id) as (span, log):
            provider = provider_for(model_id)
            ensure_supported(Operation.COMPLETION, provider)
            if is_chat_only(model_id):
                raise UnsupportedModelError(f"Model {model_id} only supports chat.", provider=provider)
            call_params = self.defaults.merge(params)
            span.set_attribute("gen_ai.request.temperature", call_params.temperature)
            span.set_attribute("gen_ai.request.max_tokens", call_params.max_tokens_to_sample)

            body = normalize(call_params, provider, Operation.COMPLETION, prompt)
            payload = self._runtime.invoke(model_id, body)
            return parse_response(payload, provider)

    def chat(
        self,
        params: Mapping[str, Any] | None = None,
        on_chunk: Callable[[StreamEvent], None] | None = None,
    ) -> AnthropicResponse:
        """Generate a chat completion.

        Args:
            params: Unified chat parameters: ``messages`` (required),
                ``model``, ``system``, ``max_tokens``, ``stop`` /
                ``stop_sequences``, ``temperature``, ``top_p``, ``top_k``,
                ``tools``, ``tool_choice``, ``metadata``.
            on_chunk: When given, the response is streamed and every decoded
                event is passed to this callback in arrival order before the
                final response is returned.

        Returns:
            The typed response.  A streamed response's ``raw`` is read-only
            (mappings and tuples); use ``to_dict()`` for the plain
            dict-and-list shape a single-shot call returns.

        Raises:
            InvalidRequestError: ``messages`` is missing or empty.
            UnsupportedProviderError: The chat model's provider does not
                offer chat.
            MalformedStreamError: The streamed response could not be
                reassembled.
        """
        params = dict(params or {})
        require_messages(params)

        model_id = params.get("model") or self.defaults.chat_completion_model_name
        with self._request(Operation.CHAT, model_id) as (span, log):
            provider = provider_for(model_id)
            ensure_supported(Operation.CHAT, provider)
            model_id, body = split_model(normalize(self.defaults, provider, Operation.CHAT, params))
            span.set_attribute("llm.stream", on_chunk is not None)
            span.set_attribute("gen_ai.request.max_tokens", body["max_tokens"])
            if "temperature" in body:
                span.set_attribute("gen_ai.request.temperature", body["temperature"])

            if on_chunk is None:
                payload = self._runtime.invoke(model_id, body)
            else:
                payload = self._stream(model_id, body, on_chunk, span, log)

            response = parse_response(payload, provider)
            if response.prompt_tokens is not None:
                span.set_attribute("gen_ai.usage.input_tokens", response.prompt_tokens)
            if response.completion_tokens is not None:
                span.set_attribute("gen_ai.usage.output_tokens", response.completion_tokens)
            if response.stop_reason:
                span.set_attribute("gen_ai.response.finish_reasons", [response.stop_reason])
            return response

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stream(
        self,
        model_id: str,
        body: Mapping[str, Any],
        on_chunk: Callable[[StreamEvent], None],
        span: Any,
        log: Any,
    ) -> Mapping[str, Any]:
        """Consume the response stream, feeding each event to the fold and *on_chunk*.

        The partial state is dropped if anything fails before the stream ends;
        only a finalized message leaves this method.
        """
        state = ReassemblyState()
        received = 0
        try:
            for event in self._runtime.stream(model_id, body):
                received += 1
                apply_event(state, event)
                on_chunk(event)
            message = finalize(state)
        except Exception:
            log.warning("llm_stream_aborted", events_received=received)
            raise
        finally:
            span.set_attribute("llm.stream.events", received)
        return message

    @contextmanager
    def _request(self, operation: Operation, model_id: str) -> Iterator[tuple[Any, Any]]:
        """Open the span and bound logger for one call and record its outcome."""
        request_id = str(uuid.uuid4())
        start_time = time.monotonic()

        with _tracer.start_as_current_span(f"bedrock.{operation}") as span:
            span.set_attribute("gen_ai.system", "aws.bedrock")
            span.set_attribute("gen_ai.operation.name", str(operation))
            span.set_attribute("gen_ai.request.model", model_id)

            log = _log.bind(request_id=request_id, operation=str(operation), model=model_id)
            log.info("llm_request_start")

            try:
                yield span, log
            except ProviderError as exc:
                span.record_exception(exc)
                span.set_status(StatusCode.ERROR, exc.message)
                log.error(
                    "llm_request_error",
                    error_type=type(exc).__name__,
                    error=exc.message,
                    provider=exc.provider,
                )
                raise
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(StatusCode.ERROR, str(exc))
                log.error("llm_request_error", error_type=type(exc).__name__, error=str(exc))
                raise
            finally:
                duration_ms = round((time.monotonic() - start_time) * 1000, 2)
                log.info("llm_request_complete", duration_ms=duration_ms)
