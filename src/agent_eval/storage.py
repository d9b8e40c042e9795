"""JSON result artifacts, one file per run."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from agent_eval.benchmark.base import TaskResult, TaskVerdict
from agent_eval.metrics import AggregateMetrics, TaskMetrics
from agent_eval.orchestrator import BenchmarkResult, EvaluationRun


def run_to_dict(run: EvaluationRun) -> dict[str, Any]:
    return {
        "run_id": run.run_id,
        "started_at": run.started_at,
        "finished_at": run.finished_at,
        "cancelled": run.cancelled,
        "config": run.config,
        "aggregate": run.aggregate.to_dict(),
        "benchmarks": [
            {
                "name": bench.name,
                "total_tasks": bench.total_tasks,
                "duration_ms": bench.duration_ms,
                "cancelled": bench.cancelled,
                "error": bench.error,
                "aggregate": bench.aggregate.to_dict(),
                "results": [
                    {
                        "task_id": r.task_id,
                        "verdict": r.verdict.value,
                        "model": r.model,
                        "tier": r.tier,
                        "error": r.error,
                        "metrics": asdict(r.metrics),
                        "details": r.details,
                    }
                    for r in bench.results
                ],
            }
            for bench in run.benchmarks
        ],
    }


def run_from_dict(data: dict[str, Any]) -> EvaluationRun:
    benchmarks = []
    for bench in data.get("benchmarks", []):
        results = [
            TaskResult(
                task_id=r["task_id"],
                verdict=TaskVerdict(r["verdict"]),
                metrics=TaskMetrics.from_dict(r.get("metrics", {})),
                model=r.get("model", ""),
                tier=r.get("tier", ""),
                error=r.get("error", ""),
                details=r.get("details", {}),
            )
            for r in bench.get("results", [])
        ]
        benchmarks.append(BenchmarkResult(
            name=bench["name"],
            results=results,
            total_tasks=bench.get("total_tasks", len(results)),
            duration_ms=bench.get("duration_ms", 0),
            cancelled=bench.get("cancelled", False),
            error=bench.get("error", ""),
        ))
    return EvaluationRun(
        run_id=data["run_id"],
        started_at=data.get("started_at", ""),
        finished_at=data.get("finished_at", ""),
        benchmarks=benchmarks,
        aggregate=AggregateMetrics.from_dict(data.get("aggregate", {})),
        cancelled=data.get("cancelled", False),
        config=data.get("config", {}),
    )


def save_run(run: EvaluationRun, output_dir: str | Path) -> Path:
    path = Path(output_dir) / f"{run.run_id}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(run_to_dict(run), f, indent=2, default=str)
    return path


def load_run(path: str | Path) -> EvaluationRun:
    with open(path) as f:
        return run_from_dict(json.load(f))
