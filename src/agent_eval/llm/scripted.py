"""Scripted client that replays canned responses, for tests and dry runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .base import LLMClient, LLMResponse, Message, StopReason, Usage


def text_response(text: str, model: str = "scripted", **usage: int) -> LLMResponse:
    return LLMResponse(
        content=[{"type": "text", "text": text}],
        stop_reason=StopReason.END_TURN,
        usage=Usage(**usage),
        model=model,
    )


def tool_response(
    calls: list[tuple[str, dict[str, Any]]],
    model: str = "scripted",
    **usage: int,
) -> LLMResponse:
    """Build a tool_use response from (tool name, input) pairs."""
    content = [
        {"type": "tool_use", "id": f"toolu_{i:03d}", "name": name, "input": args}
        for i, (name, args) in enumerate(calls)
    ]
    return LLMResponse(
        content=content,
        stop_reason=StopReason.TOOL_USE,
        usage=Usage(**usage),
        model=model,
    )


@dataclass
class RecordedCall:
    messages: list[Message]
    tools: list[dict[str, Any]] | None
    system: str


@dataclass
class ScriptedClient(LLMClient):
    """Returns (or raises) each scripted item in order.

    Once the script is exhausted the last response repeats, or a plain
    end-of-turn reply is returned if the script was empty.
    """
    script: list[LLMResponse | Exception] = field(default_factory=list)
    model: str = "scripted"
    calls: list[RecordedCall] = field(default_factory=list)

    @property
    def model_name(self) -> str:
        return self.model

    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> LLMResponse:
        self.calls.append(RecordedCall(list(messages), tools, system))
        index = len(self.calls) - 1
        if not self.script:
            return text_response("Done.", model=self.model)
        item = self.script[min(index, len(self.script) - 1)]
        if isinstance(item, Exception):
            raise item
        return item
