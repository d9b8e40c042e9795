"""Task model and the benchmark adapter contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent_eval.metrics import TaskMetrics
    from agent_eval.routing.classifier import Difficulty


@dataclass(frozen=True)
class Task:
    """A single benchmark task for the agent to solve. Immutable once loaded."""
    instance_id: str
    problem_statement: str
    repo: str = ""
    base_commit: str = ""
    hints_text: str | None = None
    test_patch: str = ""
    files_to_modify: tuple[str, ...] = ()
    patch: str | None = None  # Reference solution, never shown to the agent
    complexity: Difficulty | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


class TaskVerdict(str, Enum):
    SOLVED = "solved"
    UNSOLVED = "unsolved"
    ERROR = "error"


@dataclass
class TaskResult:
    """Outcome of running the agent on one task."""
    task_id: str
    verdict: TaskVerdict
    metrics: TaskMetrics
    model: str = ""
    tier: str = ""
    error: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def solved(self) -> bool:
        return self.verdict == TaskVerdict.SOLVED


@dataclass
class BenchmarkMetadata:
    name: str
    description: str = ""
    version: str = ""
    total_tasks: int = 0


class BenchmarkAdapter(ABC):
    """A source of tasks plus the means to run and score them.

    The orchestrator calls setup once, then load_tasks, run_task for each
    task, and cleanup at the end even when something failed.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    async def setup(self) -> None:
        return None

    @abstractmethod
    async def load_tasks(self, limit: int | None = None) -> list[Task]:
        ...

    @abstractmethod
    async def run_task(self, task: Task) -> TaskResult:
        ...

    async def cleanup(self) -> None:
        return None

    def metadata(self) -> BenchmarkMetadata:
        return BenchmarkMetadata(name=self.name)
