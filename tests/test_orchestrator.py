"""Tests for concurrent, cancellable evaluation runs."""

import asyncio

import pytest

from agent_eval.benchmark.base import BenchmarkAdapter, Task, TaskResult, TaskVerdict
from agent_eval.config import EvaluationConfig
from agent_eval.llm.errors import ConfigurationError
from agent_eval.logging.logger import ExperimentLogger
from agent_eval.metrics import TaskMetrics
from agent_eval.orchestrator import (
    BenchmarkCompleted,
    BenchmarkStarted,
    EvaluationCompleted,
    EvaluationStarted,
    Orchestrator,
    ProgressChannel,
    TaskCompleted,
)


class FakeAdapter(BenchmarkAdapter):
    def __init__(self, name, count=3, solved=(), failing=(), delay=0.0, on_task=None, tracker=None,
                 setup_error=None):
        self._name = name
        self.tasks = [Task(instance_id=f"{name}-{i}", problem_statement="p") for i in range(count)]
        self.solved = set(solved)
        self.failing = set(failing)
        self.delay = delay
        self.on_task = on_task
        self.tracker = tracker
        self.setup_error = setup_error
        self.cleaned_up = False
        self.setup_calls = 0
        self.ran = []

    @property
    def name(self):
        return self._name

    async def setup(self):
        self.setup_calls += 1
        if self.setup_error:
            raise self.setup_error

    async def load_tasks(self, limit=None):
        return self.tasks[:limit] if limit is not None else list(self.tasks)

    async def run_task(self, task):
        if self.tracker is not None:
            self.tracker["active"] += 1
            self.tracker["peak"] = max(self.tracker["peak"], self.tracker["active"])
        try:
            self.ran.append(task.instance_id)
            if self.on_task:
                self.on_task(task)
            await asyncio.sleep(self.delay)
            if task.instance_id in self.failing:
                raise RuntimeError("sandbox exploded")
            verdict = TaskVerdict.SOLVED if task.instance_id in self.solved else TaskVerdict.UNSOLVED
            return TaskResult(task.instance_id, verdict, TaskMetrics(task_id=task.instance_id, cost_usd=0.5))
        finally:
            if self.tracker is not None:
                self.tracker["active"] -= 1

    async def cleanup(self):
        self.cleaned_up = True


@pytest.mark.asyncio
async def test_run_aggregates_results_and_emits_progress():
    adapter = FakeAdapter("bench", count=3, solved={"bench-0", "bench-2"})
    orchestrator = Orchestrator([adapter])

    run = await orchestrator.run_evaluation(EvaluationConfig(benchmarks=["bench"]))

    assert run.run_id.startswith("run-")
    assert not run.cancelled
    assert run.finished_at
    assert [r.task_id for r in run.results] == ["bench-0", "bench-1", "bench-2"]
    assert run.aggregate.count == 3
    assert run.aggregate.solved == 2
    assert run.aggregate.total_cost_usd == pytest.approx(1.5)
    assert run.results[0].metrics.solved
    assert adapter.cleaned_up

    history = orchestrator.progress.history
    assert isinstance(history[0], EvaluationStarted)
    assert history[0].total_tasks == 3
    assert isinstance(history[1], BenchmarkStarted)
    assert sum(isinstance(e, TaskCompleted) for e in history) == 3
    assert isinstance(history[-2], BenchmarkCompleted)
    assert history[-2].tasks_solved == 2
    assert isinstance(history[-1], EvaluationCompleted)
    assert history[-1].tasks_solved == 2


@pytest.mark.asyncio
async def test_failing_task_is_isolated():
    adapter = FakeAdapter("bench", count=3, solved={"bench-2"}, failing={"bench-1"})
    run = await Orchestrator([adapter]).run_evaluation(EvaluationConfig(benchmarks=["bench"]))

    verdicts = [r.verdict for r in run.results]
    assert verdicts == [TaskVerdict.UNSOLVED, TaskVerdict.ERROR, TaskVerdict.SOLVED]
    assert "sandbox exploded" in run.results[1].error
    assert run.aggregate.errors == 1


@pytest.mark.asyncio
async def test_failed_benchmark_setup_does_not_stop_others():
    broken = FakeAdapter("broken", setup_error=RuntimeError("dataset unavailable"))
    healthy = FakeAdapter("healthy", count=2)
    run = await Orchestrator([broken, healthy]).run_evaluation(
        EvaluationConfig(benchmarks=["broken", "healthy"])
    )

    by_name = {b.name: b for b in run.benchmarks}
    assert "dataset unavailable" in by_name["broken"].error
    assert by_name["broken"].results == []
    assert len(by_name["healthy"].results) == 2
    assert broken.cleaned_up and healthy.cleaned_up


@pytest.mark.asyncio
async def test_cancellation_returns_partial_run():
    orchestrator = None

    def cancel_after_first(task):
        orchestrator.cancel()

    adapter = FakeAdapter("bench", count=5, on_task=cancel_after_first)
    orchestrator = Orchestrator([adapter])
    config = EvaluationConfig(benchmarks=["bench"], max_concurrent_tasks=1)

    run = await orchestrator.run_evaluation(config)

    assert run.cancelled
    assert run.run_id
    assert len(run.results) == 1
    assert adapter.ran == ["bench-0"]
    assert run.benchmarks[0].cancelled
    assert isinstance(orchestrator.progress.history[-1], EvaluationCompleted)
    assert orchestrator.progress.history[-1].cancelled
    assert adapter.cleaned_up


@pytest.mark.asyncio
async def test_cancelled_before_start_runs_nothing():
    adapter = FakeAdapter("bench", count=2)
    orchestrator = Orchestrator([adapter])
    orchestrator.cancel()

    run = await orchestrator.run_evaluation(EvaluationConfig(benchmarks=["bench"]))
    assert run.cancelled
    assert run.results == []
    assert adapter.ran == []
    assert adapter.setup_calls == 0
    assert run.benchmarks[0].cancelled
    assert orchestrator.progress.history[0].total_tasks == 0


@pytest.mark.asyncio
async def test_concurrency_caps_are_respected():
    benchmark_tracker = {"active": 0, "peak": 0}
    adapters = [
        FakeAdapter(name, count=3, delay=0.01, tracker=benchmark_tracker)
        for name in ("a", "b", "c")
    ]
    config = EvaluationConfig(
        benchmarks=["a", "b", "c"], max_concurrent_benchmarks=1, max_concurrent_tasks=2,
    )
    run = await Orchestrator(adapters).run_evaluation(config)

    assert run.aggregate.count == 9
    assert benchmark_tracker["peak"] <= 2

    task_tracker = {"active": 0, "peak": 0}
    parallel = FakeAdapter("p", count=6, delay=0.02, tracker=task_tracker)
    await Orchestrator([parallel]).run_evaluation(
        EvaluationConfig(benchmarks=["p"], max_concurrent_tasks=3)
    )
    assert task_tracker["peak"] == 3


@pytest.mark.asyncio
async def test_task_limit_applies_per_benchmark():
    adapter = FakeAdapter("bench", count=10)
    run = await Orchestrator([adapter]).run_evaluation(EvaluationConfig(benchmarks=["bench"], task_limit=4))
    assert run.benchmarks[0].total_tasks == 4
    assert len(run.results) == 4


@pytest.mark.asyncio
async def test_unknown_or_empty_benchmarks_are_rejected():
    orchestrator = Orchestrator([FakeAdapter("bench")])
    with pytest.raises(ConfigurationError):
        await orchestrator.run_evaluation(EvaluationConfig(benchmarks=[]))
    with pytest.raises(ConfigurationError):
        await orchestrator.run_evaluation(EvaluationConfig(benchmarks=["missing"]))


@pytest.mark.asyncio
async def test_subscribers_receive_every_event_then_close():
    progress = ProgressChannel()
    queue = progress.subscribe()
    orchestrator = Orchestrator([FakeAdapter("bench", count=2)], progress=progress)

    await orchestrator.run_evaluation(EvaluationConfig(benchmarks=["bench"]))

    received = [event async for event in progress.events(queue)]
    assert received == progress.history
    assert [event async for event in progress.events()] == []


@pytest.mark.asyncio
async def test_run_is_logged(tmp_path):
    log = ExperimentLogger("run-log", tmp_path)
    orchestrator = Orchestrator([FakeAdapter("bench", count=1)], experiment_logger=log)

    await orchestrator.run_evaluation(
        EvaluationConfig(benchmarks=["bench"], provider={"api_key": "sk-secret"}), run_id="run-log",
    )

    kinds = [e["event"] for e in log.events]
    assert kinds[0] == "run_start"
    assert "task_end" in kinds
    assert kinds[-1] == "run_end"
    assert "sk-secret" not in log.log_path.read_text()


@pytest.mark.asyncio
async def test_repeated_benchmark_runs_once():
    adapter = FakeAdapter("bench", count=2)
    orchestrator = Orchestrator([adapter])

    run = await orchestrator.run_evaluation(EvaluationConfig(benchmarks=["bench", "bench"]))
    assert len(run.benchmarks) == 1
    assert adapter.ran == ["bench-0", "bench-1"]
    assert adapter.setup_calls == 1
