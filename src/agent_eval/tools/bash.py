"""Shell execution tools for the agent."""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .base import Tool, ToolResult

# Grace period for collecting output after a timed-out command is killed
_DRAIN_SECONDS = 5.0


@dataclass
class CommandOutput:
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool = False

    @property
    def combined(self) -> str:
        output = self.stdout
        if self.stderr:
            output += ("\n" if output else "") + self.stderr
        return output


async def run_command(
    args: list[str],
    cwd: str | Path,
    timeout: float,
    env: dict[str, str] | None = None,
) -> CommandOutput:
    """Run a command, killing it if it outlives the timeout."""
    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
        start_new_session=True,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_group(proc)
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            stdout, stderr = b"", b""
        return CommandOutput(
            stdout.decode(errors="replace"), stderr.decode(errors="replace"), None, timed_out=True,
        )
    return CommandOutput(
        stdout.decode(errors="replace"), stderr.decode(errors="replace"), proc.returncode,
    )


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """Kill the command and every process it started."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError:
        proc.kill()


def command_result(tool: str, out: CommandOutput, timeout: float) -> ToolResult:
    """Success iff exit code 0; a timeout is reported separately from a failure."""
    if out.timed_out:
        return ToolResult.fail(
            tool, f"Command timed out after {timeout:g} seconds", output=out.combined,
        )
    if out.exit_code != 0:
        return ToolResult.fail(
            tool, f"Exit code: {out.exit_code}", output=out.combined, exit_code=out.exit_code,
        )
    return ToolResult.ok(tool, out.combined, exit_code=0)


class BashTool(Tool):
    """Execute bash commands in the workspace."""

    # Commands that can pollute the system python environment
    _BLOCKED_PATTERNS = [
        "pip install -e",
        "pip install --editable",
        "pip3 install -e",
        "pip3 install --editable",
        "python setup.py develop",
        "python3 setup.py develop",
        "python setup.py install",
        "python3 setup.py install",
    ]

    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", timeout: int = 120):
        self.workspace_dir = Path(workspace_dir)
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return (
            "Execute a bash command in the workspace directory. "
            "Optionally pass timeout in seconds (default "
            f"{self.timeout})."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The bash command to execute"},
                "timeout": {"type": "integer", "description": "Timeout in seconds"},
            },
            "required": ["command"],
        }

    async def execute(self, *, command: str, timeout: int | None = None, **kwargs: Any) -> ToolResult:
        cmd_lower = command.lower().strip()
        for pattern in self._BLOCKED_PATTERNS:
            if pattern in cmd_lower:
                return ToolResult.fail(
                    self.name,
                    f"'{pattern}' is blocked to prevent system Python pollution. "
                    "Modify source files directly instead.",
                )
        limit = timeout if timeout and timeout > 0 else self.timeout
        out = await run_command(["bash", "-c", command], self.workspace_dir, limit)
        return command_result(self.name, out, limit)


class GitStatusTool(Tool):
    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", timeout: int = 30):
        self.workspace_dir = Path(workspace_dir)
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "git_status"

    @property
    def description(self) -> str:
        return "Show the working tree status (git status --short)."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs: Any) -> ToolResult:
        out = await run_command(["git", "status", "--short"], self.workspace_dir, self.timeout)
        result = command_result(self.name, out, self.timeout)
        if result.success and not result.output:
            result.output = "[Clean working tree]"
        return result


class GitDiffTool(Tool):
    def __init__(self, workspace_dir: str | Path = "/tmp/agent-eval-workspace", timeout: int = 30):
        self.workspace_dir = Path(workspace_dir)
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "git_diff"

    @property
    def description(self) -> str:
        return "Show uncommitted changes, optionally limited to one path."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Limit the diff to this path"},
            },
            "required": [],
        }

    async def execute(self, *, path: str | None = None, **kwargs: Any) -> ToolResult:
        args = ["git", "diff", "HEAD"]
        if path:
            args += ["--", path]
        out = await run_command(args, self.workspace_dir, self.timeout)
        result = command_result(self.name, out, self.timeout)
        if result.success and not result.output:
            result.output = "[No changes]"
        return result
