"""OpenAI-compatible backend for Ollama, GitHub Models, vLLM and similar servers.

Messages and tool schemas travel through the agent in Anthropic shape and
are converted here, so the rest of the system never sees the OpenAI format.
"""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from .base import LLMClient, LLMResponse, Message, StopReason, Usage
from .errors import (
    ApiKeyError,
    LLMError,
    ModelNotFoundError,
    NetworkError,
    ParseError,
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
    StreamError,
    StreamEvent,
)

_FINISH_REASONS = {
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "length": StopReason.MAX_TOKENS,
    "stop": StopReason.END_TURN,
}


class OpenAICompatClient(LLMClient):
    """OpenAI-compatible chat completions client with tool use."""

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434/v1",
        api_key: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        timeout: float = 600.0,
        client: Any = None,
    ):
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        # Local servers ignore the key but the SDK requires one
        self.client = client or AsyncOpenAI(
            base_url=base_url, api_key=api_key or "dummy", timeout=timeout, max_retries=0,
        )

    @property
    def model_name(self) -> str:
        return self.model

    def _build_request(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None,
        system: str,
    ) -> dict[str, Any]:
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for msg in messages:
            oai_messages.extend(_convert_message(msg.to_dict()))

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": oai_messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = [_to_openai_tool(t) for t in tools]
        return kwargs

    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> LLMResponse:
        kwargs = self._build_request(messages, tools, system)
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise self._map_error(e) from e

        if not response.choices:
            raise ParseError(f"Response from {self.model} has no choices")
        choice = response.choices[0]
        message = choice.message

        text = _strip_thinking(message.content or "")
        content: list[dict[str, Any]] = []
        if text:
            content.append({"type": "text", "text": text})

        for tc in message.tool_calls or []:
            try:
                tool_input = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                tool_input = {"raw": tc.function.arguments}
            content.append({
                "type": "tool_use",
                "id": tc.id or f"call_{uuid.uuid4().hex[:8]}",
                "name": tc.function.name,
                "input": tool_input,
            })

        stop_reason = _FINISH_REASONS.get(choice.finish_reason or "stop", StopReason.END_TURN)

        # Some local models print tool calls as JSON instead of calling natively
        if not message.tool_calls and tools and text:
            parsed = _try_parse_tool_call_from_text(text, tools)
            if parsed:
                content = parsed
                stop_reason = StopReason.TOOL_USE

        usage = response.usage
        return LLMResponse(
            content=content,
            stop_reason=stop_reason,
            usage=Usage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            ),
            model=self.model,
            raw_response=response,
        )

    async def send_message_stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> AsyncIterator[StreamEvent]:
        kwargs = self._build_request(messages, tools, system)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        yield MessageStart(model=self.model)
        text_started = False
        # OpenAI tool call index -> content block index (text is block 0)
        tool_blocks: dict[int, int] = {}
        stop_reason: StopReason | None = None
        usage: Usage | None = None
        try:
            stream = await self.client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if chunk.usage:
                    usage = Usage(
                        input_tokens=chunk.usage.prompt_tokens or 0,
                        output_tokens=chunk.usage.completion_tokens or 0,
                    )
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if delta.content:
                    if not text_started:
                        text_started = True
                        yield ContentBlockStart(0, "text")
                    yield ContentBlockDelta(0, text=delta.content)
                for tc in delta.tool_calls or []:
                    if tc.index not in tool_blocks:
                        tool_blocks[tc.index] = len(tool_blocks) + 1
                        yield ContentBlockStart(
                            tool_blocks[tc.index],
                            "tool_use",
                            tc.id or f"call_{uuid.uuid4().hex[:8]}",
                            tc.function.name if tc.function else "",
                        )
                    if tc.function and tc.function.arguments:
                        yield ContentBlockDelta(
                            tool_blocks[tc.index], partial_json=tc.function.arguments,
                        )
                if choice.finish_reason:
                    stop_reason = _FINISH_REASONS.get(choice.finish_reason, StopReason.END_TURN)
        except openai.APIError as e:
            yield StreamError(message=str(e), error_type=type(self._map_error(e)).__name__)
            return

        if text_started:
            yield ContentBlockStop(0)
        for block_index in tool_blocks.values():
            yield ContentBlockStop(block_index)
        yield MessageDelta(stop_reason=stop_reason, usage=usage)
        yield MessageStop()

    def _map_error(self, e: openai.APIError) -> LLMError:
        if isinstance(e, openai.APITimeoutError):
            return ProviderTimeoutError(self.timeout)
        if isinstance(e, openai.APIConnectionError):
            return NetworkError(f"Cannot reach {self.base_url}: {e}")
        if isinstance(e, openai.AuthenticationError):
            return ApiKeyError(str(e))
        if isinstance(e, openai.NotFoundError):
            return ModelNotFoundError(self.model)
        if isinstance(e, openai.APIStatusError):
            retry_after = parse_retry_after(e.response.headers.get("retry-after"))
            if isinstance(e, openai.RateLimitError):
                return RateLimitError(retry_after if retry_after is not None else 60.0)
            return error_from_status(e.status_code, e.message, retry_after)
        return LLMError(str(e))


def _convert_message(msg: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert one Anthropic-format message to OpenAI messages."""
    role = msg["role"]
    content = msg.get("content", "")

    if isinstance(content, str):
        return [{"role": role, "content": content}]

    # Tool results (Anthropic: role=user with tool_result blocks)
    if role == "user":
        converted = []
        text_parts = []
        for block in content:
            if block.get("type") == "tool_result":
                tool_content = block.get("content", "")
                if isinstance(tool_content, list):
                    tool_content = "\n".join(
                        b.get("text", "") for b in tool_content if b.get("type") == "text"
                    )
                converted.append({
                    "role": "tool",
                    "tool_call_id": block.get("tool_use_id", "unknown"),
                    "content": str(tool_content),
                })
            elif block.get("type") == "text":
                text_parts.append(block["text"])
        if text_parts:
            converted.append({"role": "user", "content": "\n".join(text_parts)})
        return converted

    text_parts = []
    tool_calls = []
    for block in content:
        if block.get("type") == "text":
            text_parts.append(block["text"])
        elif block.get("type") == "tool_use":
            tool_calls.append({
                "id": block.get("id", f"call_{uuid.uuid4().hex[:8]}"),
                "type": "function",
                "function": {
                    "name": block["name"],
                    "arguments": json.dumps(block.get("input") or {}),
                },
            })
    result: dict[str, Any] = {
        "role": "assistant",
        "content": "\n".join(text_parts) if text_parts else None,
    }
    if tool_calls:
        result["tool_calls"] = tool_calls
    return [result]


def _to_openai_tool(anthropic_tool: dict[str, Any]) -> dict[str, Any]:
    """Convert Anthropic tool schema to OpenAI tool format."""
    schema = dict(anthropic_tool.get("input_schema", {}))
    schema.pop("cache_control", None)
    return {
        "type": "function",
        "function": {
            "name": anthropic_tool["name"],
            "description": anthropic_tool.get("description", ""),
            "parameters": schema,
        },
    }


def _strip_thinking(text: str) -> str:
    """Remove <think>...</think> blocks from model output."""
    return re.sub(r"<think>.*?</think>\s*", "", text, flags=re.DOTALL).strip()


def _try_parse_tool_call_from_text(
    text: str, tools: list[dict[str, Any]]
) -> list[dict[str, Any]] | None:
    """Extract {"name": ..., "arguments": {...}} objects printed as text."""
    tool_names = {t["name"] for t in tools}
    pattern = r'\{[^{}]*"name"\s*:\s*"(\w+)"[^{}]*"(?:input|arguments)"\s*:\s*(\{[^}]*\})[^{}]*\}'

    content = []
    for name, args_str in re.findall(pattern, text, re.DOTALL):
        if name not in tool_names:
            continue
        try:
            args = json.loads(args_str)
        except json.JSONDecodeError:
            continue
        content.append({
            "type": "tool_use",
            "id": f"call_{uuid.uuid4().hex[:8]}",
            "name": name,
            "input": args,
        })
    return content or None
