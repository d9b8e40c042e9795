"""Tool contract and registry."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


@dataclass
class ToolResult:
    tool: str
    output: str
    success: bool
    error: str | None = None
    exit_code: int | None = None

    @classmethod
    def ok(cls, tool: str, output: str, exit_code: int | None = None) -> ToolResult:
        return cls(tool=tool, output=output, success=True, exit_code=exit_code)

    @classmethod
    def fail(
        cls, tool: str, error: str, output: str = "", exit_code: int | None = None,
    ) -> ToolResult:
        return cls(tool=tool, output=output, success=False, error=error, exit_code=exit_code)

    def to_content(self, max_chars: int | None = None) -> str:
        """Text fed back to the model as the tool_result content."""
        text = self.output
        if not self.success:
            text = f"Error: {self.error}" + (f"\n{self.output}" if self.output else "")
        if max_chars is not None and len(text) > max_chars:
            text = text[:max_chars] + f"\n[... truncated {len(text) - max_chars} chars]"
        return text or "[No output]"


class Tool(ABC):
    """Abstract base class for agent tools.

    Subclasses implement either the async execute or the blocking run, which
    the default execute moves onto a worker thread.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        ...

    async def execute(self, **kwargs: Any) -> ToolResult:
        return await asyncio.to_thread(self.run, **kwargs)

    def run(self, **kwargs: Any) -> ToolResult:
        raise NotImplementedError(f"{type(self).__name__} must implement run or execute")

    def to_api_schema(self) -> dict[str, Any]:
        """Convert to Anthropic tool API format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


def validate_args(schema: dict[str, Any], args: dict[str, Any]) -> str | None:
    """Check args against a tool's JSON schema; return an error message or None."""
    if not isinstance(args, dict):
        return f"arguments must be an object, got {type(args).__name__}"
    properties = schema.get("properties", {})
    missing = [name for name in schema.get("required", []) if name not in args]
    if missing:
        return f"missing required argument(s): {', '.join(missing)}"
    for name, value in args.items():
        expected = properties.get(name, {}).get("type")
        if expected is None:
            continue
        types = _JSON_TYPES.get(expected)
        if types is None:
            continue
        # bool is a subclass of int but is not a JSON integer
        if isinstance(value, bool) and expected in ("integer", "number"):
            return f"argument '{name}' must be {expected}, got boolean"
        if not isinstance(value, types):
            return f"argument '{name}' must be {expected}, got {type(value).__name__}"
    return None


class ToolSet:
    """Registry and dispatcher for agent tools."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        if tools:
            for tool in tools:
                self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, name: str, args: dict[str, Any]) -> ToolResult:
        """Run a tool by name. Failures come back as results, never raised."""
        if name not in self._tools:
            return ToolResult.fail(
                name, f"Unknown tool: {name}. Available tools: {', '.join(self.tool_names)}",
            )
        tool = self._tools[name]
        problem = validate_args(tool.input_schema, args)
        if problem:
            return ToolResult.fail(name, f"Invalid arguments: {problem}")
        try:
            return await tool.execute(**args)
        except Exception as e:
            logger.warning("Tool %s raised: %s", name, e)
            return ToolResult.fail(name, f"{type(e).__name__}: {e}")

    def to_api_schemas(self) -> list[dict[str, Any]]:
        return [t.to_api_schema() for t in self._tools.values()]

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())
