"""SWE-bench dataset loading, workspace provisioning and scoring."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Any, Iterable

from datasets import load_dataset

from agent_eval.agent import Agent, AgentState
from agent_eval.config import DatasetConfig, DatasetSource, EvaluationConfig
from agent_eval.llm.errors import ConfigurationError, LLMError
from agent_eval.llm.provider import ProviderPool
from agent_eval.logging.logger import ExperimentLogger
from agent_eval.metrics import TaskMetrics
from agent_eval.prompts import PromptBuilder
from agent_eval.routing import Router, create_router
from agent_eval.tools import create_default_toolset

from .base import BenchmarkAdapter, BenchmarkMetadata, Task, TaskResult, TaskVerdict

logger = logging.getLogger(__name__)

DATASET_NAMES = {
    DatasetSource.VERIFIED: "princeton-nlp/SWE-bench_Verified",
    DatasetSource.LITE: "princeton-nlp/SWE-bench_Lite",
    DatasetSource.FULL: "princeton-nlp/SWE-bench",
}


def task_from_row(row: dict[str, Any]) -> Task:
    """Build a Task from one SWE-bench record."""
    patch = row.get("patch") or None
    return Task(
        instance_id=row.get("instance_id", ""),
        problem_statement=row.get("problem_statement", ""),
        repo=row.get("repo", ""),
        base_commit=row.get("base_commit", ""),
        hints_text=row.get("hints_text") or None,
        test_patch=row.get("test_patch", ""),
        files_to_modify=tuple(_extract_files_from_patch(patch or "")),
        patch=patch,
        metadata={
            "version": row.get("version", ""),
            "FAIL_TO_PASS": row.get("FAIL_TO_PASS", ""),
            "PASS_TO_PASS": row.get("PASS_TO_PASS", ""),
            "environment_setup_commit": row.get("environment_setup_commit", ""),
        },
    )


def _select(rows: Iterable[dict[str, Any]], instance_ids: list[str], limit: int | None) -> list[Task]:
    wanted = set(instance_ids)
    tasks = []
    for row in rows:
        if wanted and row.get("instance_id", "") not in wanted:
            continue
        tasks.append(task_from_row(row))
        if limit is not None and len(tasks) >= limit:
            break
    return tasks


def load_swebench_tasks(
    source: DatasetSource = DatasetSource.VERIFIED,
    split: str = "test",
    instance_ids: list[str] | None = None,
    limit: int | None = None,
) -> list[Task]:
    """Load SWE-bench tasks from HuggingFace datasets, keeping the first `limit`."""
    if source not in DATASET_NAMES:
        raise ConfigurationError(f"Not a hosted SWE-bench dataset: {source.value}")
    ds = load_dataset(DATASET_NAMES[source], split=split)
    return _select(ds, instance_ids or [], limit)


def load_local_tasks(
    path: str | Path,
    instance_ids: list[str] | None = None,
    limit: int | None = None,
) -> list[Task]:
    """Load tasks from a local JSON array or JSON-lines file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Dataset file not found: {path}")
    text = path.read_text()
    if path.suffix == ".jsonl":
        rows = [json.loads(line) for line in text.splitlines() if line.strip()]
    else:
        rows = json.loads(text)
        if isinstance(rows, dict):
            rows = rows.get("tasks", [])
    return _select(rows, instance_ids or [], limit)


def load_tasks(dataset: DatasetConfig, limit: int | None = None) -> list[Task]:
    if dataset.source == DatasetSource.LOCAL:
        if not dataset.path:
            raise ConfigurationError("dataset.path is required for a local dataset")
        return load_local_tasks(dataset.path, dataset.instance_ids, limit)
    return load_swebench_tasks(dataset.source, dataset.split, dataset.instance_ids, limit)


def provision_workspace(task: Task, workspace_root: str | Path) -> Path:
    """Clone the repo and check out the base commit; reuse and reset if present."""
    workspace = Path(workspace_root) / task.instance_id.replace("/", "__")

    if workspace.exists():
        subprocess.run(
            ["git", "checkout", task.base_commit, "--force"],
            cwd=workspace, capture_output=True, check=True,
        )
        subprocess.run(["git", "clean", "-fdx"], cwd=workspace, capture_output=True, check=True)
        return workspace

    workspace.parent.mkdir(parents=True, exist_ok=True)
    repo_url = f"https://github.com/{task.repo}.git"
    subprocess.run(
        ["git", "clone", "--depth", "50", repo_url, str(workspace)],
        capture_output=True, check=True, timeout=300,
    )

    # Fetch the full history if the shallow clone lacks the base commit
    check = subprocess.run(
        ["git", "cat-file", "-e", task.base_commit], cwd=workspace, capture_output=True,
    )
    if check.returncode != 0:
        subprocess.run(["git", "fetch", "--unshallow"], cwd=workspace, capture_output=True, timeout=600)

    subprocess.run(["git", "checkout", task.base_commit], cwd=workspace, capture_output=True, check=True)
    return workspace


def apply_test_patch(task: Task, workspace: Path) -> bool:
    """Apply the task's test patch (adds the failing tests). True if applied."""
    if not task.test_patch:
        return False
    check = subprocess.run(
        ["git", "apply", "--check", "-"],
        input=task.test_patch, text=True, cwd=workspace, capture_output=True,
    )
    if check.returncode != 0:
        # Already applied or conflicting with the agent's edits
        return False
    subprocess.run(
        ["git", "apply", "-"],
        input=task.test_patch, text=True, cwd=workspace, capture_output=True, check=True,
    )
    return True


def evaluate_task(task: Task, workspace: Path, timeout: int = 300) -> dict[str, Any]:
    """Run the FAIL_TO_PASS tests against the agent's changes."""
    apply_test_patch(task, workspace)
    test_cmd = _build_eval_command(task)
    if not test_cmd:
        return {"resolved": False, "error": "No test command could be constructed"}

    # Keep the harness's own virtualenv out of the task's test run
    clean_env = {k: v for k, v in os.environ.items() if k not in ("VIRTUAL_ENV", "PYTHONPATH")}
    clean_env["PATH"] = ":".join(
        p for p in os.environ.get("PATH", "").split(":") if ".venv" not in p
    )
    clean_env["PYTHONDONTWRITEBYTECODE"] = "1"

    try:
        result = subprocess.run(
            ["bash", "-c", test_cmd],
            cwd=workspace, capture_output=True, text=True, timeout=timeout, env=clean_env,
        )
    except subprocess.TimeoutExpired:
        return {"resolved": False, "error": "Test execution timed out", "test_command": test_cmd}
    return {
        "resolved": result.returncode == 0,
        "exit_code": result.returncode,
        "stdout": result.stdout[-3000:],
        "stderr": result.stderr[-3000:],
        "test_command": test_cmd,
    }


def _build_eval_command(task: Task) -> str:
    """pytest invocation for FAIL_TO_PASS, resolving bare test names via the test patch."""
    fail_to_pass = task.metadata.get("FAIL_TO_PASS", "")
    if not fail_to_pass:
        return ""
    try:
        test_ids = json.loads(fail_to_pass) if isinstance(fail_to_pass, str) else fail_to_pass
    except json.JSONDecodeError:
        return ""
    if not isinstance(test_ids, list) or not test_ids:
        return ""

    test_files = _extract_files_from_patch(task.test_patch)
    pytest_args = []
    for test_id in test_ids:
        if "::" in test_id or "/" in test_id or not test_files:
            pytest_args.append(test_id)
        else:
            pytest_args.append(f"{test_files[0]}::{test_id}")
    quoted = " ".join(shlex.quote(a) for a in pytest_args)
    return f"python3 -m pytest {quoted} -x --tb=short"


def _extract_files_from_patch(patch: str) -> list[str]:
    """File paths touched by a git diff."""
    files = []
    for line in patch.split("\n"):
        if line.startswith("+++ b/"):
            files.append(line[6:])
    return files


class SWEBenchAdapter(BenchmarkAdapter):
    """Runs the agent on SWE-bench tasks, one git workspace per task."""

    def __init__(
        self,
        config: EvaluationConfig,
        pool: ProviderPool | None = None,
        router: Router | None = None,
        experiment_logger: ExperimentLogger | None = None,
        tasks: list[Task] | None = None,
        evaluate: bool = True,
    ):
        self.config = config
        self.features = config.feature_flags
        self.pool = pool or ProviderPool(config.rate_limit, prompt_caching=self.features.prompt_caching)
        self.router = router or create_router(config)
        self.experiment_logger = experiment_logger
        self.prompts = PromptBuilder(config.agent, self.features)
        self.evaluate = evaluate
        self._preloaded = tasks

    @property
    def name(self) -> str:
        return "swebench"

    async def setup(self) -> None:
        Path(self.config.workspace_dir).mkdir(parents=True, exist_ok=True)

    async def load_tasks(self, limit: int | None = None) -> list[Task]:
        if self._preloaded is not None:
            return self._preloaded[:limit] if limit is not None else list(self._preloaded)
        return await asyncio.to_thread(load_tasks, self.config.dataset, limit)

    def metadata(self) -> BenchmarkMetadata:
        return BenchmarkMetadata(
            name=self.name,
            description=f"SWE-bench ({self.config.dataset.source.value})",
            total_tasks=len(self._preloaded or []),
        )

    async def run_task(self, task: Task) -> TaskResult:
        try:
            decision = self.router.decide(task)
            client = self.pool.get(decision.config)
        except LLMError as e:
            return _error_result(task, f"Provider setup failed: {e}")

        if self.experiment_logger:
            self.experiment_logger.log_routing(
                task.instance_id,
                self.router.name,
                decision.tier.value if decision.tier else "",
                decision.config.model,
                difficulty=decision.difficulty.value if decision.difficulty else "",
                estimated_cost_usd=decision.estimated_cost_usd,
            )

        try:
            workspace = await asyncio.to_thread(
                provision_workspace, task, self.config.workspace_dir,
            )
        except (subprocess.SubprocessError, OSError) as e:
            return _error_result(task, f"Provisioning failed: {e}", model=decision.config.model)

        tools = create_default_toolset(
            workspace,
            bash_timeout=self.config.agent.tool_timeout_seconds,
            smart_test_selection=self.features.smart_test_selection,
            validate_syntax=self.features.tree_sitter_validation,
        )
        agent = Agent(
            client, tools, self.config.agent,
            system_prompt=self.prompts.system_prompt,
            logger=self.experiment_logger,
        )
        outcome = await agent.run(task, prompt=self.prompts.task_prompt(task, workspace))
        tier = decision.tier.value if decision.tier else ""

        if outcome.state == AgentState.FAILED:
            return TaskResult(
                task.instance_id, TaskVerdict.ERROR, outcome.metrics,
                model=decision.config.model, tier=tier, error=outcome.error,
            )

        details: dict[str, Any] = {}
        if self.evaluate:
            details = await asyncio.to_thread(evaluate_task, task, workspace)
        outcome.metrics.solved = bool(details.get("resolved"))
        verdict = TaskVerdict.SOLVED if outcome.metrics.solved else TaskVerdict.UNSOLVED
        return TaskResult(
            task.instance_id, verdict, outcome.metrics,
            model=decision.config.model, tier=tier, details=details,
        )


def _error_result(task: Task, message: str, model: str = "") -> TaskResult:
    logger.warning("Task %s: %s", task.instance_id, message)
    return TaskResult(
        task.instance_id,
        TaskVerdict.ERROR,
        TaskMetrics(task_id=task.instance_id, error=message),
        model=model,
        error=message,
    )
