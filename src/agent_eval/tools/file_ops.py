"""File operation tools for the agent."""

from __future__ import annotations

import ast
import fnmatch
import os
import re
from pathlib import Path
from typing import Any

from .base import Tool, ToolResult

SKIP_DIRS = {".git", "node_modules", "target", "build", "dist", "__pycache__", ".venv", "venv"}


class WorkspaceTool(Tool):
    """A tool whose paths are relative to, and confined to, one workspace."""

    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace"):
        self.workspace_dir = Path(workspace_dir).resolve()

    def resolve(self, path: str) -> Path:
        resolved = (self.workspace_dir / path).resolve()
        if resolved != self.workspace_dir and self.workspace_dir not in resolved.parents:
            raise ValueError(f"Path escapes the workspace: {path}")
        return resolved


def python_syntax_error(path: str, content: str) -> str | None:
    """Parse error for a .py file, or None when it parses (or is not Python)."""
    if not path.endswith(".py"):
        return None
    try:
        ast.parse(content)
    except SyntaxError as e:
        return f"Syntax error in {path} line {e.lineno}: {e.msg}"
    return None


class FileReadTool(WorkspaceTool):
    """Read file contents, optionally a line range."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read the contents of a file at the given path. Optionally pass "
            "start_line and end_line (1-based, inclusive) to read part of it."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to workspace root"},
                "start_line": {"type": "integer", "description": "First line to read"},
                "end_line": {"type": "integer", "description": "Last line to read"},
            },
            "required": ["path"],
        }

    def run(self, *, path: str, start_line: int | None = None,
            end_line: int | None = None, **kwargs: Any) -> ToolResult:
        file_path = self.resolve(path)
        if not file_path.is_file():
            return ToolResult.fail(self.name, f"File not found: {path}")
        content = file_path.read_text(errors="replace")
        if start_line is None and end_line is None:
            return ToolResult.ok(self.name, content)
        lines = content.splitlines(keepends=True)
        start = max((start_line or 1) - 1, 0)
        end = end_line if end_line is not None else len(lines)
        return ToolResult.ok(self.name, "".join(lines[start:end]))


class FileWriteTool(WorkspaceTool):
    """Write content to a file, creating parent directories."""

    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", validate_syntax: bool = False):
        super().__init__(workspace_dir)
        self.validate_syntax = validate_syntax

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file, replacing it if it exists."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to workspace root"},
                "content": {"type": "string", "description": "Content to write"},
            },
            "required": ["path", "content"],
        }

    def run(self, *, path: str, content: str, **kwargs: Any) -> ToolResult:
        file_path = self.resolve(path)
        error = python_syntax_error(path, content) if self.validate_syntax else None
        if error:
            return ToolResult.fail(self.name, error)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return ToolResult.ok(self.name, f"Successfully wrote {len(content)} chars to {path}")


class FileEditTool(WorkspaceTool):
    """Edit a file by replacing a unique string."""

    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", validate_syntax: bool = False):
        super().__init__(workspace_dir)
        self.validate_syntax = validate_syntax

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit a file by replacing old_string with new_string. old_string "
            "must appear exactly once in the file."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to workspace root"},
                "old_string": {"type": "string", "description": "The exact string to replace"},
                "new_string": {"type": "string", "description": "The replacement string"},
            },
            "required": ["path", "old_string", "new_string"],
        }

    def run(self, *, path: str, old_string: str, new_string: str, **kwargs: Any) -> ToolResult:
        file_path = self.resolve(path)
        if not file_path.is_file():
            return ToolResult.fail(self.name, f"File not found: {path}")
        content = file_path.read_text()
        count = content.count(old_string)
        if count == 0:
            return ToolResult.fail(self.name, f"old_string not found in {path}")
        if count > 1:
            return ToolResult.fail(
                self.name,
                f"old_string found {count} times in {path}. Provide more context to make it unique.",
            )
        updated = content.replace(old_string, new_string, 1)
        error = python_syntax_error(path, updated) if self.validate_syntax else None
        if error:
            return ToolResult.fail(self.name, error)
        file_path.write_text(updated)
        return ToolResult.ok(self.name, f"Successfully edited {path}")


class ListFilesTool(WorkspaceTool):
    """List files under a directory."""

    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", max_entries: int = 500):
        super().__init__(workspace_dir)
        self.max_entries = max_entries

    @property
    def name(self) -> str:
        return "list_files"

    @property
    def description(self) -> str:
        return (
            "List files under a directory (default: workspace root), optionally "
            "filtered by a glob pattern such as '*.py'."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory relative to workspace root"},
                "pattern": {"type": "string", "description": "Filename glob filter"},
            },
            "required": [],
        }

    def run(self, *, path: str = ".", pattern: str | None = None, **kwargs: Any) -> ToolResult:
        root = self.resolve(path)
        if not root.is_dir():
            return ToolResult.fail(self.name, f"Not a directory: {path}")
        entries = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS and not d.startswith("."))
            for filename in sorted(filenames):
                if pattern and not fnmatch.fnmatch(filename, pattern):
                    continue
                entries.append(str((Path(dirpath) / filename).relative_to(self.workspace_dir)))
        truncated = len(entries) > self.max_entries
        output = "\n".join(entries[:self.max_entries])
        if truncated:
            output += f"\n[... {len(entries) - self.max_entries} more files]"
        return ToolResult.ok(self.name, output or "[No files]")


class GrepTool(WorkspaceTool):
    """Search file contents with a regular expression."""

    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", max_matches: int = 200):
        super().__init__(workspace_dir)
        self.max_matches = max_matches

    @property
    def name(self) -> str:
        return "grep"

    @property
    def description(self) -> str:
        return (
            "Search for a regular expression in files under a directory. "
            "Returns matching lines as path:line:text."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Regular expression to search for"},
                "path": {"type": "string", "description": "Directory relative to workspace root"},
                "include": {"type": "string", "description": "Filename glob filter, e.g. '*.py'"},
            },
            "required": ["pattern"],
        }

    def run(self, *, pattern: str, path: str = ".", include: str | None = None,
            **kwargs: Any) -> ToolResult:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            return ToolResult.fail(self.name, f"Invalid regex: {e}")
        root = self.resolve(path)
        files = [root] if root.is_file() else sorted(_walk_files(root))
        matches = []
        for file_path in files:
            if include and not fnmatch.fnmatch(file_path.name, include):
                continue
            try:
                text = file_path.read_text()
            except (UnicodeDecodeError, OSError):
                continue
            rel = file_path.relative_to(self.workspace_dir)
            for lineno, line in enumerate(text.splitlines(), 1):
                if regex.search(line):
                    matches.append(f"{rel}:{lineno}:{line}")
                    if len(matches) >= self.max_matches:
                        matches.append(f"[... stopped after {self.max_matches} matches]")
                        return ToolResult.ok(self.name, "\n".join(matches))
        return ToolResult.ok(self.name, "\n".join(matches) or "[No matches]")


def _walk_files(root: Path):
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS and not d.startswith(".")]
        for filename in filenames:
            yield Path(dirpath) / filename
