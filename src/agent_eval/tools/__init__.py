"""Agent tools."""

from pathlib import Path

from .base import Tool, ToolResult, ToolSet
from .bash import BashTool, GitDiffTool, GitStatusTool
from .file_ops import FileEditTool, FileReadTool, FileWriteTool, GrepTool, ListFilesTool
from .testing import RunTestsTool


def create_default_toolset(
    workspace_dir: str | Path = "/tmp/agent-eval-workspace",
    bash_timeout: int = 120,
    smart_test_selection: bool = True,
    validate_syntax: bool = False,
) -> ToolSet:
    """Create the default set of tools for the agent."""
    return ToolSet([
        FileReadTool(workspace_dir),
        FileWriteTool(workspace_dir, validate_syntax=validate_syntax),
        FileEditTool(workspace_dir, validate_syntax=validate_syntax),
        ListFilesTool(workspace_dir),
        GrepTool(workspace_dir),
        BashTool(workspace_dir, timeout=bash_timeout),
        GitStatusTool(workspace_dir),
        GitDiffTool(workspace_dir),
        RunTestsTool(workspace_dir, smart_selection=smart_test_selection),
    ])
