"""Append-only conversation owned by one agent run."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from agent_eval.llm.base import Message, Role, ToolUse
from agent_eval.tools.base import ToolResult


@dataclass
class ToolCall:
    tool_use: ToolUse
    result: ToolResult
    timestamp: float = field(default_factory=time.time)
    duration_seconds: float = 0.0


@dataclass
class Conversation:
    messages: list[Message] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)

    def add_user_message(self, content: str) -> None:
        self.messages.append(Message(Role.USER, content))

    def add_assistant_message(self, content: list[dict[str, Any]]) -> None:
        self.messages.append(Message(Role.ASSISTANT, content))

    def add_tool_results(self, calls: list[ToolCall], max_chars: int | None = None) -> None:
        """Fold one tool_result block per call into a single user turn."""
        blocks = []
        for call in calls:
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": call.tool_use.id,
                "content": call.result.to_content(max_chars),
            }
            if not call.result.success:
                block["is_error"] = True
            blocks.append(block)
            self.tool_calls.append(call)
        self.messages.append(Message(Role.USER, blocks))

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    def __len__(self) -> int:
        return len(self.messages)
