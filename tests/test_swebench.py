"""Tests for SWE-bench task loading, prompts and the adapter."""

import json
import shutil
import subprocess
from dataclasses import dataclass, field

import pytest

from agent_eval.benchmark.base import Task, TaskVerdict
from agent_eval.benchmark.registry import create_adapters
from agent_eval.benchmark.swebench import (
    SWEBenchAdapter,
    _build_eval_command,
    load_local_tasks,
    load_tasks,
    task_from_row,
)
from agent_eval.config import DatasetConfig, DatasetSource, EvaluationConfig, FeatureFlags, ProviderConfig, ProviderType
from agent_eval.llm.errors import ConfigurationError
from agent_eval.llm.scripted import ScriptedClient, text_response, tool_response
from agent_eval.logging.logger import ExperimentLogger
from agent_eval.prompts import PromptBuilder
from agent_eval.routing import FixedRouter

PATCH = """diff --git a/src/calc.py b/src/calc.py
--- a/src/calc.py
+++ b/src/calc.py
@@ -1 +1 @@
-def add(a, b): return a - b
+def add(a, b): return a + b
"""

TEST_PATCH = """diff --git a/tests/test_calc.py b/tests/test_calc.py
--- /dev/null
+++ b/tests/test_calc.py
@@ -0,0 +1,2 @@
+def test_add():
+    assert True
"""

ROW = {
    "instance_id": "acme__calc-42",
    "repo": "acme/calc",
    "base_commit": "abc123",
    "problem_statement": "add() subtracts instead of adding",
    "hints_text": "",
    "patch": PATCH,
    "test_patch": TEST_PATCH,
    "FAIL_TO_PASS": '["test_add"]',
    "PASS_TO_PASS": "[]",
    "version": "1.0",
}


def test_task_from_row():
    task = task_from_row(ROW)
    assert task.instance_id == "acme__calc-42"
    assert task.hints_text is None
    assert task.files_to_modify == ("src/calc.py",)
    assert task.metadata["version"] == "1.0"
    assert task.complexity is None


def test_build_eval_command_resolves_bare_test_names():
    task = task_from_row(ROW)
    assert _build_eval_command(task) == "python3 -m pytest tests/test_calc.py::test_add -x --tb=short"

    qualified = task_from_row({**ROW, "FAIL_TO_PASS": '["tests/test_x.py::test_y"]'})
    assert _build_eval_command(qualified) == "python3 -m pytest tests/test_x.py::test_y -x --tb=short"

    assert _build_eval_command(task_from_row({**ROW, "FAIL_TO_PASS": ""})) == ""
    assert _build_eval_command(task_from_row({**ROW, "FAIL_TO_PASS": "not json"})) == ""


def test_load_local_jsonl_and_json(tmp_path):
    rows = [{**ROW, "instance_id": f"acme__calc-{i}"} for i in range(5)]
    jsonl = tmp_path / "tasks.jsonl"
    jsonl.write_text("\n".join(json.dumps(r) for r in rows) + "\n")

    assert [t.instance_id for t in load_local_tasks(jsonl, limit=2)] == ["acme__calc-0", "acme__calc-1"]
    picked = load_local_tasks(jsonl, instance_ids=["acme__calc-3"])
    assert [t.instance_id for t in picked] == ["acme__calc-3"]

    wrapped = tmp_path / "tasks.json"
    wrapped.write_text(json.dumps({"tasks": rows}))
    dataset = DatasetConfig(source=DatasetSource.LOCAL, path=str(wrapped))
    assert len(load_tasks(dataset, limit=3)) == 3


def test_load_local_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        load_local_tasks(tmp_path / "missing.jsonl")
    with pytest.raises(ConfigurationError):
        load_tasks(DatasetConfig(source=DatasetSource.LOCAL))


def test_task_prompt_includes_outline(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "calc.py").write_text("def add(a, b):\n    return a - b\n")
    task = task_from_row({**ROW, "hints_text": "Look at the operator."})

    prompt = PromptBuilder(features=FeatureFlags(context_ast=True)).task_prompt(task, tmp_path)
    assert prompt.startswith("# Task\nInstance: acme__calc-42\nRepository: acme/calc")
    assert "## Problem statement\nadd() subtracts instead of adding" in prompt
    assert "## Hints\nLook at the operator." in prompt
    assert "## Relevant files" in prompt
    assert "def add(a, b)" in prompt
    assert "a + b" not in prompt

    plain = PromptBuilder(features=FeatureFlags(context_ast=False)).task_prompt(task, tmp_path)
    assert "## Relevant files" not in plain


def test_create_adapters():
    adapters = create_adapters(EvaluationConfig(benchmarks=["swebench"]))
    assert [a.name for a in adapters] == ["swebench"]
    with pytest.raises(ConfigurationError):
        create_adapters(EvaluationConfig(benchmarks=["nope"]))
    with pytest.raises(ConfigurationError):
        create_adapters(EvaluationConfig(benchmarks=[]))


@pytest.mark.asyncio
async def test_adapter_returns_preloaded_tasks():
    tasks = [task_from_row({**ROW, "instance_id": f"t-{i}"}) for i in range(4)]
    adapter = SWEBenchAdapter(EvaluationConfig(), tasks=tasks)
    assert len(await adapter.load_tasks(limit=2)) == 2
    assert len(await adapter.load_tasks()) == 4
    assert adapter.metadata().total_tasks == 4


@dataclass
class _StaticPool:
    client: ScriptedClient
    requested: list = field(default_factory=list)

    def get(self, config):
        self.requested.append(config)
        return self.client


def _git(*args, cwd):
    subprocess.run(
        ["git", "-c", "user.email=dev@example.com", "-c", "user.name=dev", *args],
        cwd=cwd, check=True, capture_output=True,
    )


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
@pytest.mark.asyncio
async def test_adapter_runs_agent_in_existing_workspace(tmp_path):
    workspace_root = tmp_path / "workspaces"
    repo = workspace_root / "acme__calc-42"
    (repo / "src").mkdir(parents=True)
    (repo / "src" / "calc.py").write_text("def add(a, b): return a - b\n")
    _git("init", "-q", cwd=repo)
    _git("add", ".", cwd=repo)
    _git("commit", "-q", "-m", "base", cwd=repo)
    head = subprocess.run(
        ["git", "rev-parse", "HEAD"], cwd=repo, check=True, capture_output=True, text=True,
    ).stdout.strip()

    task = task_from_row({**ROW, "base_commit": head, "FAIL_TO_PASS": ""})
    client = ScriptedClient([
        tool_response([("edit_file", {"path": "src/calc.py", "old_string": "a - b", "new_string": "a + b"})]),
        text_response("Fixed add()."),
    ])
    local = ProviderConfig(provider=ProviderType.OLLAMA, model="qwen2.5-coder:7b")
    log = ExperimentLogger("run-swe", tmp_path / "logs")
    config = EvaluationConfig(workspace_dir=str(workspace_root))
    adapter = SWEBenchAdapter(
        config, pool=_StaticPool(client), router=FixedRouter(local), experiment_logger=log, tasks=[task],
    )

    result = await adapter.run_task(task)

    assert (repo / "src" / "calc.py").read_text() == "def add(a, b): return a + b\n"
    assert result.verdict == TaskVerdict.UNSOLVED
    assert result.details["error"] == "No test command could be constructed"
    assert result.model == "qwen2.5-coder:7b"
    assert result.metrics.file_edits == 1
    assert log.events[0]["event"] == "routing"
    assert log.events[0]["router"] == "fixed"
    assert "Instance: acme__calc-42" in client.calls[0].messages[0].content


@pytest.mark.asyncio
async def test_adapter_reports_provider_errors(tmp_path, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    task = Task(instance_id="x-1", problem_statement="p")
    config = EvaluationConfig(
        workspace_dir=str(tmp_path), provider=ProviderConfig(provider=ProviderType.ANTHROPIC),
    )
    result = await SWEBenchAdapter(config, tasks=[task]).run_task(task)
    assert result.verdict == TaskVerdict.ERROR
    assert "ANTHROPIC_API_KEY" in result.error
