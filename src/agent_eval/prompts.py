"""Prompt construction for benchmark tasks."""

from __future__ import annotations

from pathlib import Path

from agent_eval.benchmark.base import Task
from agent_eval.config import AgentConfig, FeatureFlags
from agent_eval.source_context import SourceContextBuilder


class PromptBuilder:
    def __init__(
        self,
        agent_config: AgentConfig | None = None,
        features: FeatureFlags | None = None,
        context_builder: SourceContextBuilder | None = None,
    ):
        self.agent_config = agent_config or AgentConfig()
        self.features = features or FeatureFlags()
        self.context_builder = context_builder or SourceContextBuilder()

    @property
    def system_prompt(self) -> str:
        return self.agent_config.system_prompt

    def task_prompt(self, task: Task, workspace_dir: str | Path | None = None) -> str:
        parts = [
            "# Task",
            f"Instance: {task.instance_id}",
        ]
        if task.repo:
            parts.append(f"Repository: {task.repo}")
        parts += ["", "## Problem statement", task.problem_statement.strip()]
        if task.hints_text and task.hints_text.strip():
            parts += ["", "## Hints", task.hints_text.strip()]
        if self.features.context_ast and workspace_dir and task.files_to_modify:
            outline = self.context_builder.render(workspace_dir, list(task.files_to_modify))
            if outline:
                parts += ["", "## Relevant files", outline]
        return "\n".join(parts)
