"""Typed stream events and the fold that turns them into one response."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterator, Union

from .base import LLMResponse, StopReason, Usage
from .errors import LLMError, ParseError


@dataclass
class MessageStart:
    model: str = ""
    usage: Usage = field(default_factory=Usage)


@dataclass
class ContentBlockStart:
    index: int
    block_type: str  # "text" or "tool_use"
    tool_use_id: str = ""
    tool_name: str = ""


@dataclass
class ContentBlockDelta:
    index: int
    text: str = ""
    partial_json: str = ""  # Fragment of a tool_use input


@dataclass
class ContentBlockStop:
    index: int


@dataclass
class MessageDelta:
    stop_reason: StopReason | None = None
    usage: Usage | None = None


@dataclass
class MessageStop:
    pass


@dataclass
class Ping:
    pass


@dataclass
class StreamError:
    message: str
    error_type: str = "error"


StreamEvent = Union[
    MessageStart,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    MessageDelta,
    MessageStop,
    Ping,
    StreamError,
]


@dataclass
class _PartialBlock:
    block_type: str
    text: str = ""
    tool_use_id: str = ""
    tool_name: str = ""
    json_parts: list[str] = field(default_factory=list)

    def finish(self) -> dict[str, Any]:
        if self.block_type == "tool_use":
            raw = "".join(self.json_parts)
            try:
                tool_input = json.loads(raw) if raw else {}
            except json.JSONDecodeError as e:
                raise ParseError(f"Invalid tool input JSON for {self.tool_name}: {e}") from e
            return {
                "type": "tool_use",
                "id": self.tool_use_id,
                "name": self.tool_name,
                "input": tool_input,
            }
        return {"type": "text", "text": self.text}


class StreamAccumulator:
    """Folds stream events into a final LLMResponse."""

    def __init__(self) -> None:
        self.model = ""
        self.usage = Usage()
        self.stop_reason = StopReason.END_TURN
        self.finished = False
        self._blocks: dict[int, _PartialBlock] = {}

    def push(self, event: StreamEvent) -> None:
        if isinstance(event, MessageStart):
            self.model = event.model
            self.usage = Usage(**vars(event.usage))
        elif isinstance(event, ContentBlockStart):
            self._blocks[event.index] = _PartialBlock(
                block_type=event.block_type,
                tool_use_id=event.tool_use_id,
                tool_name=event.tool_name,
            )
        elif isinstance(event, ContentBlockDelta):
            block = self._blocks.get(event.index)
            if block is None:
                # Some backends send deltas without an explicit start
                block = _PartialBlock(block_type="tool_use" if event.partial_json else "text")
                self._blocks[event.index] = block
            block.text += event.text
            if event.partial_json:
                block.json_parts.append(event.partial_json)
        elif isinstance(event, MessageDelta):
            if event.stop_reason is not None:
                self.stop_reason = event.stop_reason
            if event.usage is not None:
                _merge_usage(self.usage, event.usage)
        elif isinstance(event, MessageStop):
            self.finished = True
        elif isinstance(event, StreamError):
            raise LLMError(f"Stream error ({event.error_type}): {event.message}")

    def response(self) -> LLMResponse:
        content = [self._blocks[i].finish() for i in sorted(self._blocks)]
        content = [b for b in content if b["type"] != "text" or b["text"]]
        return LLMResponse(
            content=content,
            stop_reason=self.stop_reason,
            usage=self.usage,
            model=self.model,
        )


def _merge_usage(target: Usage, update: Usage) -> None:
    # Usage updates are cumulative snapshots; zero means "not reported"
    for name in (
        "input_tokens",
        "output_tokens",
        "cache_creation_input_tokens",
        "cache_read_input_tokens",
    ):
        value = getattr(update, name)
        if value:
            setattr(target, name, value)


async def collect_stream(events: AsyncIterator[StreamEvent]) -> LLMResponse:
    """Consume a stream to completion and return the folded response."""
    acc = StreamAccumulator()
    async for event in events:
        acc.push(event)
    return acc.response()


def events_from_response(response: LLMResponse) -> Iterator[StreamEvent]:
    """Replay a complete response as stream events."""
    yield MessageStart(model=response.model, usage=Usage(
        input_tokens=response.usage.input_tokens,
        cache_creation_input_tokens=response.usage.cache_creation_input_tokens,
        cache_read_input_tokens=response.usage.cache_read_input_tokens,
    ))
    for index, block in enumerate(response.content):
        if block.get("type") == "tool_use":
            yield ContentBlockStart(index, "tool_use", block["id"], block["name"])
            yield ContentBlockDelta(index, partial_json=json.dumps(block.get("input") or {}))
        elif block.get("type") == "text":
            yield ContentBlockStart(index, "text")
            yield ContentBlockDelta(index, text=block["text"])
        else:
            continue
        yield ContentBlockStop(index)
    yield MessageDelta(
        stop_reason=response.stop_reason,
        usage=Usage(output_tokens=response.usage.output_tokens),
    )
    yield MessageStop()
