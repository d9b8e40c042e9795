"""Per-task metrics and their aggregation."""

from __future__ import annotations

import statistics
import time
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from agent_eval.llm.base import LLMResponse, Usage

# Tool names counted separately in task metrics
READ_TOOLS = {"read_file"}
WRITE_TOOLS = {"write_file"}
EDIT_TOOLS = {"edit_file"}
TEST_TOOLS = {"run_tests"}


@dataclass
class TaskMetrics:
    task_id: str = ""
    solved: bool = False
    cost_usd: float = 0.0
    duration_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    steps: int = 0
    llm_calls: int = 0
    retries: int = 0
    tool_calls: int = 0
    tool_errors: int = 0
    file_reads: int = 0
    file_writes: int = 0
    file_edits: int = 0
    test_runs: int = 0
    truncated: bool = False
    error: str = ""

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens + self.output_tokens
            + self.cache_creation_input_tokens + self.cache_read_input_tokens
        )

    @property
    def cache_hit_rate(self) -> float:
        """Fraction of total input tokens served from cache."""
        total = self.input_tokens + self.cache_creation_input_tokens + self.cache_read_input_tokens
        return self.cache_read_input_tokens / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskMetrics:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class MetricsCollector:
    """Accumulates usage and tool activity while one task runs."""

    def __init__(self, task_id: str = ""):
        self.metrics = TaskMetrics(task_id=task_id)
        self._start = time.monotonic()

    def record_response(self, response: LLMResponse) -> None:
        usage: Usage = response.usage
        m = self.metrics
        m.llm_calls += 1
        m.input_tokens += usage.input_tokens
        m.output_tokens += usage.output_tokens
        m.cache_creation_input_tokens += usage.cache_creation_input_tokens
        m.cache_read_input_tokens += usage.cache_read_input_tokens
        m.cost_usd += response.cost_usd

    def record_retry(self) -> None:
        self.metrics.retries += 1

    def record_tool_call(self, name: str, success: bool) -> None:
        m = self.metrics
        m.tool_calls += 1
        if not success:
            m.tool_errors += 1
        if name in READ_TOOLS:
            m.file_reads += 1
        elif name in WRITE_TOOLS:
            m.file_writes += 1
        elif name in EDIT_TOOLS:
            m.file_edits += 1
        elif name in TEST_TOOLS:
            m.test_runs += 1

    def finish(self) -> TaskMetrics:
        self.metrics.duration_ms = int((time.monotonic() - self._start) * 1000)
        return self.metrics


@dataclass
class AggregateMetrics:
    count: int = 0
    solved: int = 0
    accuracy: float = 0.0
    mean_cost_usd: float = 0.0
    mean_duration_ms: float = 0.0
    median_duration_ms: float = 0.0
    total_cost_usd: float = 0.0
    total_tokens: int = 0
    errors: int = 0

    @classmethod
    def from_tasks(cls, tasks: Iterable[TaskMetrics]) -> AggregateMetrics:
        tasks = list(tasks)
        if not tasks:
            return cls()
        count = len(tasks)
        solved = sum(1 for t in tasks if t.solved)
        total_cost = sum(t.cost_usd for t in tasks)
        durations = [t.duration_ms for t in tasks]
        return cls(
            count=count,
            solved=solved,
            accuracy=solved / count,
            mean_cost_usd=total_cost / count,
            mean_duration_ms=sum(durations) / count,
            median_duration_ms=float(statistics.median(durations)),
            total_cost_usd=total_cost,
            total_tokens=sum(t.total_tokens for t in tasks),
            errors=sum(1 for t in tasks if t.error),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AggregateMetrics:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
