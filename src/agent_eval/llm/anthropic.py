"""Anthropic Claude backend with tool use, prompt caching and streaming."""

from __future__ import annotations

import copy
from typing import Any, AsyncIterator

import anthropic

from .base import LLMClient, LLMResponse, Message, StopReason, Usage
from .errors import (
    ApiKeyError,
    LLMError,
    ModelNotFoundError,
    NetworkError,
    ProviderTimeoutError,
    RateLimitError,
    error_from_status,
    parse_retry_after,
)
from .streaming import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageStart,
    MessageStop,
    Ping,
    StreamError,
    StreamEvent,
)


class AnthropicClient(LLMClient):
    """Claude API client.

    Caching strategy when prompt caching is on:
    - System prompt and tools: always cached (static across all turns)
    - Conversation history: cache breakpoint on the second-to-last user turn,
      so all prior context is reused on each subsequent API call.
    """

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.3,
        prompt_caching: bool = True,
        timeout: float = 600.0,
        client: Any = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.prompt_caching = prompt_caching
        self.timeout = timeout
        # SDK retries are disabled; the agent loop owns retry policy
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=0,
        )

    @property
    def model_name(self) -> str:
        return self.model

    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> LLMResponse:
        kwargs = self._build_request(messages, tools, system)
        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise self._map_error(e) from e

        content = []
        for block in response.content:
            if block.type == "text":
                content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                content.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                })

        return LLMResponse(
            content=content,
            stop_reason=StopReason.parse(response.stop_reason),
            usage=_usage_from_sdk(response.usage),
            model=response.model,
            raw_response=response,
        )

    async def send_message_stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> AsyncIterator[StreamEvent]:
        kwargs = self._build_request(messages, tools, system)
        try:
            stream = await self.client.messages.create(stream=True, **kwargs)
            async for raw in stream:
                event = _convert_stream_event(raw)
                if event is not None:
                    yield event
        except anthropic.APIError as e:
            yield StreamError(message=str(e), error_type=type(self._map_error(e)).__name__)

    def _build_request(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None,
        system: str,
    ) -> dict[str, Any]:
        api_messages = [m.to_dict() for m in messages]
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        if not self.prompt_caching:
            kwargs["messages"] = api_messages
            if system:
                kwargs["system"] = system
            if tools:
                kwargs["tools"] = tools
            return kwargs

        kwargs["messages"] = _add_cache_breakpoints(api_messages)
        if system:
            kwargs["system"] = [
                {
                    "type": "text",
                    "text": system,
                    "cache_control": {"type": "ephemeral"},
                }
            ]
        if tools:
            # A breakpoint on the last tool caches the whole tool list
            cached_tools = [dict(t) for t in tools]
            cached_tools[-1] = {
                **cached_tools[-1],
                "cache_control": {"type": "ephemeral"},
            }
            kwargs["tools"] = cached_tools
        return kwargs

    def _map_error(self, e: anthropic.APIError) -> LLMError:
        if isinstance(e, anthropic.APITimeoutError):
            return ProviderTimeoutError(self.timeout)
        if isinstance(e, anthropic.APIConnectionError):
            return NetworkError(str(e))
        if isinstance(e, anthropic.AuthenticationError):
            return ApiKeyError(str(e))
        if isinstance(e, anthropic.NotFoundError):
            return ModelNotFoundError(self.model)
        if isinstance(e, anthropic.APIStatusError):
            retry_after = parse_retry_after(e.response.headers.get("retry-after"))
            if isinstance(e, anthropic.RateLimitError):
                return RateLimitError(retry_after if retry_after is not None else 60.0)
            return error_from_status(e.status_code, e.message, retry_after)
        return LLMError(str(e))


def _usage_from_sdk(usage: Any) -> Usage:
    if usage is None:
        return Usage()
    return Usage(
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
        cache_creation_input_tokens=getattr(usage, "cache_creation_input_tokens", 0) or 0,
        cache_read_input_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
    )


def _convert_stream_event(raw: Any) -> StreamEvent | None:
    """Demultiplex one raw SDK stream event into a typed event."""
    kind = getattr(raw, "type", "")
    if kind == "message_start":
        return MessageStart(model=raw.message.model, usage=_usage_from_sdk(raw.message.usage))
    if kind == "content_block_start":
        block = raw.content_block
        if block.type == "tool_use":
            return ContentBlockStart(raw.index, "tool_use", block.id, block.name)
        return ContentBlockStart(raw.index, block.type)
    if kind == "content_block_delta":
        delta = raw.delta
        if delta.type == "text_delta":
            return ContentBlockDelta(raw.index, text=delta.text)
        if delta.type == "input_json_delta":
            return ContentBlockDelta(raw.index, partial_json=delta.partial_json)
        return None
    if kind == "content_block_stop":
        return ContentBlockStop(raw.index)
    if kind == "message_delta":
        return MessageDelta(
            stop_reason=StopReason.parse(raw.delta.stop_reason) if raw.delta.stop_reason else None,
            usage=_usage_from_sdk(raw.usage),
        )
    if kind == "message_stop":
        return MessageStop()
    if kind == "ping":
        return Ping()
    if kind == "error":
        return StreamError(message=str(getattr(raw, "error", raw)))
    return None


def _add_cache_breakpoints(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Put a cache breakpoint on the second-to-last user message.

    Everything before that message is cached, and only the last exchange is
    newly processed on each turn.
    """
    if len(messages) < 4:
        # Too few messages for caching to help
        return messages

    msgs = copy.deepcopy(messages)
    user_msg_indices = [i for i, m in enumerate(msgs) if m["role"] == "user"]
    if len(user_msg_indices) >= 2:
        _inject_cache_control(msgs[user_msg_indices[-2]])
    return msgs


def _inject_cache_control(message: dict[str, Any]) -> None:
    content = message.get("content")
    if isinstance(content, str):
        message["content"] = [
            {
                "type": "text",
                "text": content,
                "cache_control": {"type": "ephemeral"},
            }
        ]
    elif isinstance(content, list) and content:
        last_block = content[-1]
        if isinstance(last_block, dict):
            last_block["cache_control"] = {"type": "ephemeral"}
