"""Provider contract shared by every model backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator

if TYPE_CHECKING:
    from .streaming import StreamEvent


@dataclass(frozen=True)
class ModelPricing:
    """USD per million tokens."""
    input: float
    output: float
    cache_write: float
    cache_read: float


PRICING: dict[str, ModelPricing] = {
    "claude-sonnet-4-6": ModelPricing(3.0, 15.0, 3.75, 0.30),
    "claude-sonnet-4-20250514": ModelPricing(3.0, 15.0, 3.75, 0.30),
    "claude-opus-4-6": ModelPricing(5.0, 25.0, 6.25, 0.50),
    "claude-opus-4-20250514": ModelPricing(15.0, 75.0, 18.75, 1.50),
}


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"

    @classmethod
    def parse(cls, value: str | None) -> StopReason:
        try:
            return cls(value or "end_turn")
        except ValueError:
            return cls.END_TURN


@dataclass
class Message:
    role: Role
    content: str | list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ToolUse:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_input_tokens(self) -> int:
        """Total input tokens including cached ones."""
        return self.input_tokens + self.cache_creation_input_tokens + self.cache_read_input_tokens

    @property
    def total(self) -> int:
        return self.total_input_tokens + self.output_tokens

    def cost(self, pricing: ModelPricing | None) -> float:
        """Cost in USD; unpriced (local) models are free."""
        if pricing is None:
            return 0.0
        return (
            self.input_tokens * pricing.input
            + self.output_tokens * pricing.output
            + self.cache_creation_input_tokens * pricing.cache_write
            + self.cache_read_input_tokens * pricing.cache_read
        ) / 1_000_000

    def add(self, other: Usage) -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens


@dataclass
class LLMResponse:
    """Response from one provider call."""
    content: list[dict[str, Any]]  # Content blocks (text, tool_use)
    stop_reason: StopReason = StopReason.END_TURN
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    raw_response: Any = None

    @property
    def text_content(self) -> str:
        parts = []
        for block in self.content:
            if block.get("type") == "text":
                parts.append(block["text"])
        return "\n".join(parts)

    @property
    def tool_uses(self) -> list[ToolUse]:
        return [
            ToolUse(id=b["id"], name=b["name"], input=b.get("input") or {})
            for b in self.content
            if b.get("type") == "tool_use"
        ]

    @property
    def has_tool_use(self) -> bool:
        return any(b.get("type") == "tool_use" for b in self.content)

    @property
    def cost_usd(self) -> float:
        return self.usage.cost(PRICING.get(self.model))


class LLMClient(ABC):
    """Abstract base for model backends.

    Callers depend only on send_message, send_message_stream and model_name.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    @abstractmethod
    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> LLMResponse:
        """Send the conversation and return the complete response."""
        ...

    async def send_message_stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> AsyncIterator[StreamEvent]:
        """Yield stream events for one response.

        Backends without native streaming replay the full response as events.
        Stopping iteration early abandons the response.
        """
        from .streaming import events_from_response

        response = await self.send_message(messages, tools=tools, system=system)
        for event in events_from_response(response):
            yield event
