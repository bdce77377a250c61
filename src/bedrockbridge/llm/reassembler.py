"""Fold a Messages API event stream back into one message.

Bedrock delivers a streamed Anthropic response as an ordered sequence of
small events.  :func:`apply_event` folds one event into a
:class:`ReassemblyState`; :func:`finalize` turns the state into the same
shape a non-streamed call would have returned, then freezes it.

Events are consumed strictly in arrival order and never revisited.  Deltas
for a content block must follow that block's ``content_block_start``; a
delta for an undeclared index fails fast with :class:`MalformedStreamError`.
"""

import copy
import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog

from bedrockbridge.llm.errors import MalformedStreamError

_log = structlog.get_logger(__name__)

StreamEvent = Mapping[str, Any]


@dataclass
class ReassemblyState:
    """Owned accumulator for one stream.

    Attributes:
        message: Top-level message fields, established by ``message_start``.
        blocks: Content blocks keyed by their zero-based index.
        partial_json: Tool-input fragments per block index, in arrival order.
        started: Whether ``message_start`` has been seen.
        finalized: Set by :func:`finalize`; a finalized state rejects events.
    """

    message: dict[str, Any] = field(default_factory=dict)
    blocks: dict[int, dict[str, Any]] = field(default_factory=dict)
    partial_json: dict[int, list[str]] = field(default_factory=dict)
    started: bool = False
    finalized: bool = False


def _block_index(event: StreamEvent) -> int:
    index = event.get("index")
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise MalformedStreamError(
            f"{event.get('type')} event has invalid content block index {index!r}",
            provider="anthropic",
        )
    return index


def _on_message_start(state: ReassemblyState, event: StreamEvent) -> None:
    state.message = copy.deepcopy(dict(event.get("message") or {}))
    state.blocks = {}
    state.partial_json = {}
    state.started = True


def _on_content_block_start(state: ReassemblyState, event: StreamEvent) -> None:
    index = _block_index(event)
    state.blocks[index] = copy.deepcopy(dict(event.get("content_block") or {}))
    state.partial_json.pop(index, None)


def _on_content_block_delta(state: ReassemblyState, event: StreamEvent) -> None:
    index = _block_index(event)
    block = state.blocks.get(index)
    if block is None:
        raise MalformedStreamError(
            f"content_block_delta for index {index} arrived before its content_block_start",
            provider="anthropic",
        )

    delta = event.get("delta") or {}
    delta_type = delta.get("type")
    if delta_type == "text_delta":
        block["text"] = (block.get("text") or "") + delta.get("text", "")
    elif delta_type == "input_json_delta":
        state.partial_json.setdefault(index, []).append(delta.get("partial_json", ""))
    else:
        _log.debug("stream_delta_ignored", index=index, delta_type=delta_type)


def _on_message_delta(state: ReassemblyState, event: StreamEvent) -> None:
    state.message.update(event.get("delta") or {})
    usage = event.get("usage")
    if usage:
        merged = dict(state.message.get("usage") or {})
        merged.update(usage)
        state.message["usage"] = merged


_HANDLERS: dict[str, Callable[[ReassemblyState, StreamEvent], None]] = {
    "message_start": _on_message_start,
    "content_block_start": _on_content_block_start,
    "content_block_delta": _on_content_block_delta,
    "message_delta": _on_message_delta,
}


def apply_event(state: ReassemblyState, event: StreamEvent) -> ReassemblyState:
    """Fold *event* into *state* and return it.

    Unknown event kinds (``ping``, ``message_stop``, anything newer) leave the
    state untouched.

    Raises:
        MalformedStreamError: *state* is already finalized, or the event
            addresses a content block that was never started.
    """
    if state.finalized:
        raise MalformedStreamError("Cannot apply events to a finalized stream", provider="anthropic")

    handler = _HANDLERS.get(event.get("type"))
    if handler is not None:
        handler(state, event)
    return state


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(_freeze(item) for item in value)
    return value


def finalize(state: ReassemblyState) -> Mapping[str, Any]:
    """Close the stream and return the reassembled, read-only message.

    Tool-input fragments for each block are joined and parsed as a single
    JSON document that replaces the block's ``input``; an empty join yields
    ``{}``.

    Raises:
        MalformedStreamError: No ``message_start`` was received, or a block's
            joined fragments are not valid JSON.
    """
    if not state.started:
        raise MalformedStreamError("Stream ended before message_start", provider="anthropic")

    for index, fragments in state.partial_json.items():
        document = "".join(fragments)
        try:
            state.blocks[index]["input"] = json.loads(document) if document else {}
        except json.JSONDecodeError as exc:
            raise MalformedStreamError(
                f"Tool input for content block {index} is not valid JSON: {exc.msg}",
                provider="anthropic",
                original_error=exc,
            ) from exc

    if state.blocks:
        state.message["content"] = [state.blocks[index] for index in sorted(state.blocks)]
    state.finalized = True
    return _freeze(state.message)


def reassemble(events: Iterable[StreamEvent]) -> Mapping[str, Any]:
    """Fold a complete event sequence into one frozen message."""
    state = ReassemblyState()
    for event in events:
        apply_event(state, event)
    return finalize(state)
