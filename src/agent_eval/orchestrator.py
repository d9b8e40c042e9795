"""Concurrent, bounded, cancellable evaluation across benchmarks."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Union

from agent_eval.benchmark.base import BenchmarkAdapter, Task, TaskResult, TaskVerdict
from agent_eval.config import EvaluationConfig
from agent_eval.llm.errors import ConfigurationError
from agent_eval.logging.logger import ExperimentLogger
from agent_eval.metrics import AggregateMetrics, TaskMetrics

logger = logging.getLogger(__name__)


class CancellationToken:
    """Shared flag observed before each benchmark and each task."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class EvaluationStarted:
    run_id: str
    benchmarks: list[str]
    total_tasks: int


@dataclass
class BenchmarkStarted:
    name: str
    total_tasks: int


@dataclass
class TaskCompleted:
    benchmark: str
    task_id: str
    index: int
    total: int
    verdict: str
    solved: bool
    duration_ms: int
    cost_usd: float


@dataclass
class BenchmarkCompleted:
    name: str
    tasks_solved: int
    total_tasks: int
    duration_ms: int
    cost_usd: float
    error: str = ""


@dataclass
class EvaluationCompleted:
    run_id: str
    tasks_solved: int
    total_tasks: int
    cancelled: bool


ProgressEvent = Union[
    EvaluationStarted,
    BenchmarkStarted,
    TaskCompleted,
    BenchmarkCompleted,
    EvaluationCompleted,
]


class ProgressChannel:
    """Fan-out of progress events to any number of subscribers.

    Queues are unbounded, so publishing never blocks the orchestrator.
    Every event is also kept in `history`.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self.history: list[ProgressEvent] = []
        self._subscribers: list[asyncio.Queue] = []
        self._closed = False

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(self._CLOSED)
        self._subscribers.append(queue)
        return queue

    def publish(self, event: ProgressEvent) -> None:
        self.history.append(event)
        for queue in self._subscribers:
            queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            queue.put_nowait(self._CLOSED)

    async def events(self, queue: asyncio.Queue | None = None) -> AsyncIterator[ProgressEvent]:
        """Iterate events until the channel closes."""
        queue = queue or self.subscribe()
        while True:
            item = await queue.get()
            if item is self._CLOSED:
                return
            yield item


@dataclass
class BenchmarkResult:
    name: str
    results: list[TaskResult] = field(default_factory=list)
    total_tasks: int = 0
    duration_ms: int = 0
    cancelled: bool = False
    error: str = ""

    @property
    def aggregate(self) -> AggregateMetrics:
        return AggregateMetrics.from_tasks(r.metrics for r in self.results)

    @property
    def tasks_solved(self) -> int:
        return sum(1 for r in self.results if r.solved)


@dataclass
class EvaluationRun:
    run_id: str
    started_at: str
    finished_at: str = ""
    benchmarks: list[BenchmarkResult] = field(default_factory=list)
    aggregate: AggregateMetrics = field(default_factory=AggregateMetrics)
    cancelled: bool = False
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def results(self) -> list[TaskResult]:
        return [r for bench in self.benchmarks for r in bench.results]


def aggregate_results(benchmarks: list[BenchmarkResult]) -> AggregateMetrics:
    return AggregateMetrics.from_tasks(r.metrics for bench in benchmarks for r in bench.results)


def generate_run_id() -> str:
    return f"run-{uuid.uuid4()}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Orchestrator:
    """Runs benchmarks concurrently under a cap, streaming progress events.

    One failing task or benchmark never aborts the rest of the run, and
    cancellation returns whatever finished rather than raising.
    """

    def __init__(
        self,
        adapters: list[BenchmarkAdapter],
        cancellation: CancellationToken | None = None,
        progress: ProgressChannel | None = None,
        experiment_logger: ExperimentLogger | None = None,
    ):
        self.adapters = {adapter.name: adapter for adapter in adapters}
        self.cancellation = cancellation or CancellationToken()
        self.progress = progress or ProgressChannel()
        self.experiment_logger = experiment_logger

    def cancel(self) -> None:
        self.cancellation.cancel()

    def _emit(self, event: ProgressEvent) -> None:
        self.progress.publish(event)
        if self.experiment_logger:
            self.experiment_logger.log_progress(event)

    async def run_evaluation(self, config: EvaluationConfig, run_id: str | None = None) -> EvaluationRun:
        if not config.benchmarks:
            raise ConfigurationError("No benchmarks to run")
        unknown = [name for name in config.benchmarks if name not in self.adapters]
        if unknown:
            raise ConfigurationError(f"No adapter registered for: {', '.join(unknown)}")

        run = EvaluationRun(
            run_id=run_id or generate_run_id(),
            started_at=_now(),
            config=config.model_dump(mode="json", exclude={"provider": {"api_key"}}),
        )
        if self.experiment_logger:
            self.experiment_logger.log_run_start(run.config)

        names = list(dict.fromkeys(config.benchmarks))
        adapters = [self.adapters[name] for name in names]
        loaded = await asyncio.gather(*(self._prepare(a, config.task_limit) for a in adapters))
        self._emit(EvaluationStarted(
            run.run_id,
            names,
            sum(len(tasks) for tasks, _ in loaded),
        ))

        benchmark_slots = asyncio.Semaphore(max(config.max_concurrent_benchmarks, 1))

        async def run_one(adapter: BenchmarkAdapter, tasks: list[Task], error: str) -> BenchmarkResult:
            async with benchmark_slots:
                return await self._run_benchmark(adapter, tasks, error, config.max_concurrent_tasks)

        try:
            run.benchmarks = list(await asyncio.gather(
                *(run_one(a, tasks, error) for a, (tasks, error) in zip(adapters, loaded))
            ))
        finally:
            for adapter in adapters:
                try:
                    await adapter.cleanup()
                except Exception as e:
                    logger.warning("Cleanup of %s failed: %s", adapter.name, e)

        run.aggregate = aggregate_results(run.benchmarks)
        run.cancelled = self.cancellation.cancelled
        run.finished_at = _now()
        self._emit(EvaluationCompleted(
            run.run_id, run.aggregate.solved, run.aggregate.count, run.cancelled,
        ))
        self.progress.close()
        if self.experiment_logger:
            self.experiment_logger.log_run_end(run.aggregate.to_dict())
        return run

    async def _prepare(self, adapter: BenchmarkAdapter, limit: int | None) -> tuple[list[Task], str]:
        """Set up an adapter and load its tasks; failures are reported, not raised."""
        if self.cancellation.cancelled:
            return [], ""
        try:
            await adapter.setup()
            tasks = await adapter.load_tasks(limit)
        except Exception as e:
            logger.error("Benchmark %s failed to load: %s", adapter.name, e)
            return [], f"{type(e).__name__}: {e}"
        if limit is not None:
            tasks = tasks[:limit]
        return tasks, ""

    async def _run_benchmark(
        self,
        adapter: BenchmarkAdapter,
        tasks: list[Task],
        error: str,
        max_concurrent_tasks: int,
    ) -> BenchmarkResult:
        result = BenchmarkResult(name=adapter.name, total_tasks=len(tasks), error=error)
        if error:
            self._emit(BenchmarkCompleted(adapter.name, 0, len(tasks), 0, 0.0, error=error))
            return result
        if self.cancellation.cancelled:
            result.cancelled = True
            return result

        start = time.monotonic()
        self._emit(BenchmarkStarted(adapter.name, len(tasks)))
        task_slots = asyncio.Semaphore(max(max_concurrent_tasks, 1))
        completed: list[tuple[int, TaskResult]] = []

        async def run_one(index: int, task: Task) -> None:
            async with task_slots:
                if self.cancellation.cancelled:
                    return
                task_result = await self._run_task(adapter, task)
                completed.append((index, task_result))
                self._emit(TaskCompleted(
                    benchmark=adapter.name,
                    task_id=task.instance_id,
                    index=index,
                    total=len(tasks),
                    verdict=task_result.verdict.value,
                    solved=task_result.solved,
                    duration_ms=task_result.metrics.duration_ms,
                    cost_usd=task_result.metrics.cost_usd,
                ))

        await asyncio.gather(*(run_one(i, t) for i, t in enumerate(tasks)))

        result.results = [r for _, r in sorted(completed, key=lambda item: item[0])]
        result.cancelled = len(result.results) < len(tasks)
        result.duration_ms = int((time.monotonic() - start) * 1000)
        aggregate = result.aggregate
        self._emit(BenchmarkCompleted(
            adapter.name, aggregate.solved, len(tasks), result.duration_ms, aggregate.total_cost_usd,
        ))
        return result

    async def _run_task(self, adapter: BenchmarkAdapter, task: Task) -> TaskResult:
        start = time.monotonic()
        try:
            task_result = await adapter.run_task(task)
        except Exception as e:
            logger.exception("Task %s in %s raised", task.instance_id, adapter.name)
            message = f"{type(e).__name__}: {e}"
            task_result = TaskResult(
                task.instance_id,
                TaskVerdict.ERROR,
                TaskMetrics(
                    task_id=task.instance_id,
                    duration_ms=int((time.monotonic() - start) * 1000),
                    error=message,
                ),
                error=message,
            )
        task_result.metrics.solved = task_result.solved
        if self.experiment_logger:
            self.experiment_logger.log_task_end(task.instance_id, {
                "verdict": task_result.verdict.value,
                "model": task_result.model,
                "tier": task_result.tier,
                "error": task_result.error,
                **task_result.metrics.to_dict(),
            })
        return task_result
