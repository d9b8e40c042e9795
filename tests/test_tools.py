"""Tests for agent tools and the tool registry."""

import tempfile
import time
from pathlib import Path

import pytest

from agent_eval.tools import create_default_toolset
from agent_eval.tools.base import ToolResult, ToolSet, validate_args
from agent_eval.tools.bash import BashTool
from agent_eval.tools.file_ops import (
    FileEditTool,
    FileReadTool,
    FileWriteTool,
    GrepTool,
    ListFilesTool,
)
from agent_eval.tools.testing import RunTestsTool


def test_file_read_write():
    with tempfile.TemporaryDirectory() as tmpdir:
        writer = FileWriteTool(tmpdir)
        reader = FileReadTool(tmpdir)

        result = writer.run(path="pkg/test.py", content="line1\nline2\nline3\n")
        assert result.success
        assert (Path(tmpdir) / "pkg" / "test.py").exists()

        result = reader.run(path="pkg/test.py")
        assert result.success
        assert result.output == "line1\nline2\nline3\n"

        result = reader.run(path="pkg/test.py", start_line=2, end_line=2)
        assert result.output == "line2\n"

        result = reader.run(path="missing.py")
        assert not result.success
        assert "File not found" in result.error


def test_file_edit_requires_unique_match():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.py"
        path.write_text("x = 1\ny = 1\n")
        editor = FileEditTool(tmpdir)

        result = editor.run(path="test.py", old_string="x = 1", new_string="x = 2")
        assert result.success
        assert path.read_text() == "x = 2\ny = 1\n"

        result = editor.run(path="test.py", old_string=" = ", new_string=" := ")
        assert not result.success
        assert "2 times" in result.error

        result = editor.run(path="test.py", old_string="z = 3", new_string="")
        assert not result.success


def test_paths_cannot_escape_workspace():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ValueError):
            FileReadTool(tmpdir).run(path="../../etc/passwd")


def test_list_files_and_grep():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "src").mkdir()
        (root / "src" / "app.py").write_text("def main():\n    return 1\n")
        (root / "README.md").write_text("main entry\n")
        (root / "node_modules").mkdir()
        (root / "node_modules" / "dep.py").write_text("def main(): pass\n")

        listing = ListFilesTool(tmpdir).run(pattern="*.py")
        assert listing.output.splitlines() == ["src/app.py"]

        grep = GrepTool(tmpdir)
        assert grep.run(pattern=r"def main").output == "src/app.py:1:def main():"
        assert "README.md:1:main entry" in grep.run(pattern="main", include="*.md").output
        assert grep.run(pattern="nothing here").output == "[No matches]"
        assert not grep.run(pattern="(unclosed").success


@pytest.mark.asyncio
async def test_bash_success_and_exit_code():
    with tempfile.TemporaryDirectory() as tmpdir:
        bash = BashTool(tmpdir)

        result = await bash.execute(command="echo hello")
        assert result.success
        assert result.exit_code == 0
        assert "hello" in result.output

        result = await bash.execute(command="echo oops >&2; exit 3")
        assert not result.success
        assert result.exit_code == 3
        assert result.error == "Exit code: 3"
        assert "oops" in result.output


@pytest.mark.asyncio
async def test_bash_timeout_is_distinct_from_failure():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = await BashTool(tmpdir).execute(command="sleep 5", timeout=1)
        assert not result.success
        assert result.exit_code is None
        assert "timed out" in result.error


@pytest.mark.asyncio
async def test_bash_timeout_kills_child_processes():
    with tempfile.TemporaryDirectory() as tmpdir:
        start = time.monotonic()
        result = await BashTool(tmpdir).execute(command="sleep 6; echo done", timeout=1)
        elapsed = time.monotonic() - start
        assert not result.success
        assert "timed out" in result.error
        assert "done" not in result.output
        assert elapsed < 3


@pytest.mark.asyncio
async def test_bash_blocks_editable_installs():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = await BashTool(tmpdir).execute(command="pip install -e .")
        assert not result.success
        assert "blocked" in result.error


@pytest.mark.asyncio
async def test_toolset_unknown_tool_and_invalid_args():
    with tempfile.TemporaryDirectory() as tmpdir:
        tools = create_default_toolset(tmpdir)

        result = await tools.execute("nonexistent_tool", {})
        assert not result.success
        assert "Unknown tool: nonexistent_tool" in result.error
        assert "read_file" in result.error

        result = await tools.execute("read_file", {})
        assert not result.success
        assert "Invalid arguments" in result.error

        result = await tools.execute("read_file", {"path": 5})
        assert "must be string" in result.error


@pytest.mark.asyncio
async def test_toolset_turns_exceptions_into_results():
    with tempfile.TemporaryDirectory() as tmpdir:
        tools = create_default_toolset(tmpdir)
        result = await tools.execute("read_file", {"path": "../outside.txt"})
        assert not result.success
        assert "ValueError" in result.error


def test_validate_args_rejects_bool_for_integer():
    schema = {"type": "object", "properties": {"n": {"type": "integer"}}, "required": ["n"]}
    assert validate_args(schema, {"n": 3}) is None
    assert "boolean" in validate_args(schema, {"n": True})
    assert "missing" in validate_args(schema, {})


def test_tool_result_content():
    assert ToolResult.ok("bash", "").to_content() == "[No output]"
    assert ToolResult.fail("bash", "Exit code: 1", output="trace").to_content() == "Error: Exit code: 1\ntrace"
    truncated = ToolResult.ok("read_file", "a" * 50).to_content(max_chars=10)
    assert truncated.startswith("a" * 10)
    assert "truncated 40 chars" in truncated


def test_default_toolset():
    tools = create_default_toolset("/tmp/agent-eval-test")
    assert tools.tool_names == [
        "read_file", "write_file", "edit_file", "list_files", "grep",
        "bash", "git_status", "git_diff", "run_tests",
    ]
    schemas = tools.to_api_schemas()
    assert all({"name", "description", "input_schema"} <= set(s) for s in schemas)
    assert "bash" in tools
    with pytest.raises(KeyError):
        tools.get("missing")


@pytest.mark.asyncio
async def test_run_tests_command_selection():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "tests").mkdir()
        (root / "tests" / "test_app.py").write_text("def test_ok():\n    pass\n")

        tool = RunTestsTool(tmpdir, smart_selection=False)
        assert await tool.build_command(["tests/test_app.py"]) == "pytest tests/test_app.py -v"
        assert await tool.build_command() == "pytest -v"

    with tempfile.TemporaryDirectory() as empty:
        result = await RunTestsTool(empty, smart_selection=False).execute()
        assert not result.success
        assert result.error == "No test files found in the workspace"


def test_toolset_register_overrides():
    tools = ToolSet()
    tools.register(FileReadTool("/tmp"))
    assert tools.tool_names == ["read_file"]


def test_write_rejects_invalid_python_when_validating():
    with tempfile.TemporaryDirectory() as tmpdir:
        writer = FileWriteTool(tmpdir, validate_syntax=True)

        result = writer.run(path="bad.py", content="def f(:\n    pass\n")
        assert not result.success
        assert "Syntax error in bad.py" in result.error
        assert not (Path(tmpdir) / "bad.py").exists()

        assert writer.run(path="notes.txt", content="def f(:").success
        assert writer.run(path="good.py", content="def f():\n    return 1\n").success


def test_edit_keeps_file_when_result_does_not_parse():
    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / "mod.py"
        target.write_text("x = 1\n")

        result = FileEditTool(tmpdir, validate_syntax=True).run(
            path="mod.py", old_string="x = 1", new_string="x = (1",
        )
        assert not result.success
        assert target.read_text() == "x = 1\n"

        assert FileEditTool(tmpdir).run(path="mod.py", old_string="x = 1", new_string="x = (1").success
