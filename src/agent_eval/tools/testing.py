"""Test runner tool backed by change-based test selection."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from agent_eval.test_selection import TestSelection, TestSelector, build_test_command

from .base import Tool, ToolResult
from .bash import command_result, run_command


class RunTestsTool(Tool):
    """Run the tests related to the current changes, or explicit test paths."""

    def __init__(
        self,
        workspace_dir: str | Path = "/tmp/agent-eval-workspace",
        timeout: int = 300,
        smart_selection: bool = True,
        selector: TestSelector | None = None,
    ):
        self.workspace_dir = Path(workspace_dir)
        self.timeout = timeout
        self.smart_selection = smart_selection
        self.selector = selector or TestSelector()

    @property
    def name(self) -> str:
        return "run_tests"

    @property
    def description(self) -> str:
        return (
            "Run tests. With no arguments, runs the tests related to the files "
            "changed since HEAD (or the whole suite if none can be matched). "
            "Pass paths to run specific test files."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Test files relative to workspace root",
                },
                "timeout": {"type": "integer", "description": "Timeout in seconds"},
            },
            "required": [],
        }

    async def build_command(self, paths: list[str] | None = None) -> str:
        if paths:
            selection = TestSelection(selected_tests=list(paths), all_tests=list(paths))
        elif self.smart_selection:
            selection = await self.selector.select_tests_from_git(self.workspace_dir)
        else:
            selection = await self.selector.select_tests(self.workspace_dir, [])
        return build_test_command(selection)

    async def execute(self, *, paths: list[str] | None = None,
                      timeout: int | None = None, **kwargs: Any) -> ToolResult:
        command = await self.build_command(paths)
        if not command:
            return ToolResult.fail(self.name, "No test files found in the workspace")
        limit = timeout if timeout and timeout > 0 else self.timeout
        out = await run_command(["bash", "-c", command], self.workspace_dir, limit)
        result = command_result(self.name, out, limit)
        result.output = f"$ {command}\n{result.output}"
        return result
