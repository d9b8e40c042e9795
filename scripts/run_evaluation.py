#!/usr/bin/env python3
"""CLI entry point for running evaluations."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv
load_dotenv()

from pydantic import ValidationError

from agent_eval.benchmark.registry import create_adapters
from agent_eval.config import (
    DatasetSource,
    EvaluationConfig,
    Milestone,
    ProviderType,
    RoutingPolicy,
    load_config,
    parse_benchmark_list,
)
from agent_eval.llm.errors import ConfigurationError
from agent_eval.logging.logger import ExperimentLogger
from agent_eval.orchestrator import (
    BenchmarkCompleted,
    BenchmarkStarted,
    EvaluationRun,
    Orchestrator,
    TaskCompleted,
    generate_run_id,
)
from agent_eval.storage import save_run


def build_config(args: argparse.Namespace) -> EvaluationConfig:
    """Apply command-line overrides on top of the YAML config (if any)."""
    config = load_config(args.config) if args.config else EvaluationConfig()
    updates: dict = {}
    if args.benchmarks is not None:
        updates["benchmarks"] = parse_benchmark_list(args.benchmarks)
    if args.tasks is not None:
        updates["task_limit"] = args.tasks
    if args.milestone:
        updates["milestone"] = Milestone(args.milestone)
    if args.routing:
        updates["routing"] = RoutingPolicy(args.routing)
    if args.output_dir:
        updates["output_dir"] = args.output_dir
    if args.parallel is not None:
        updates["max_concurrent_tasks"] = args.parallel
    config = config.model_copy(update=updates)

    if args.dataset_file:
        config.dataset = config.dataset.model_copy(
            update={"source": DatasetSource.LOCAL, "path": args.dataset_file},
        )
    elif args.dataset:
        config.dataset = config.dataset.model_copy(update={"source": DatasetSource(args.dataset)})
    if args.provider or args.model:
        provider_updates: dict = {}
        if args.provider:
            provider_updates["provider"] = ProviderType(args.provider)
        if args.model:
            provider_updates["model"] = args.model
        config.provider = config.provider.model_copy(update=provider_updates)

    if not config.benchmarks:
        raise ConfigurationError("Benchmark list is empty")
    return config


async def _print_progress(orchestrator: Orchestrator) -> None:
    queue = orchestrator.progress.subscribe()
    async for event in orchestrator.progress.events(queue):
        if isinstance(event, BenchmarkStarted):
            print(f"[{event.name}] Starting {event.total_tasks} tasks")
        elif isinstance(event, TaskCompleted):
            status = "SOLVED" if event.solved else event.verdict.upper()
            print(f"[{event.benchmark}] [{event.index + 1}/{event.total}] {event.task_id}: "
                  f"{status} | Cost: ${event.cost_usd:.4f} | Time: {event.duration_ms / 1000:.1f}s")
        elif isinstance(event, BenchmarkCompleted):
            if event.error:
                print(f"[{event.name}] FAILED: {event.error}")
            else:
                print(f"[{event.name}] Done: {event.tasks_solved}/{event.total_tasks} solved "
                      f"| Cost: ${event.cost_usd:.4f} | Time: {event.duration_ms / 1000:.1f}s")


async def run_evaluation_async(config: EvaluationConfig) -> EvaluationRun:
    run_id = generate_run_id()
    experiment_logger = ExperimentLogger(run_id, config.output_dir)
    orchestrator = Orchestrator(
        create_adapters(config, experiment_logger=experiment_logger),
        experiment_logger=experiment_logger,
    )

    # First Ctrl-C stops issuing new tasks; in-flight tasks finish
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except NotImplementedError:
        pass

    printer = asyncio.create_task(_print_progress(orchestrator))
    run = await orchestrator.run_evaluation(config, run_id=run_id)
    await printer
    _print_summary(run, save_run(run, config.output_dir))
    return run


def _print_summary(run: EvaluationRun, path) -> None:
    agg = run.aggregate
    print(f"\n{'=' * 60}")
    print(f"Run {run.run_id}{' (cancelled, partial results)' if run.cancelled else ''}")
    for bench in run.benchmarks:
        b = bench.aggregate
        print(f"  {bench.name}: {b.solved}/{b.count} ({b.accuracy:.1%})"
              + (f" ERROR: {bench.error}" if bench.error else ""))
    print(f"Accuracy: {agg.solved}/{agg.count} ({agg.accuracy:.1%})")
    print(f"Total cost: ${agg.total_cost_usd:.4f} | Median duration: {agg.median_duration_ms / 1000:.1f}s")
    print(f"Results saved to {path}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run coding-agent evaluation")
    parser.add_argument("--config", help="Path to evaluation YAML config")
    parser.add_argument("--tasks", type=int, help="Number of tasks per benchmark (first N)")
    parser.add_argument("--milestone", choices=[m.value for m in Milestone])
    parser.add_argument("--dataset", choices=[s.value for s in DatasetSource if s != DatasetSource.LOCAL])
    parser.add_argument("--dataset-file", help="Local JSON/JSONL dataset (overrides --dataset)")
    parser.add_argument("--benchmarks", help="Comma-separated benchmark names")
    parser.add_argument("--output-dir", help="Directory for results")
    parser.add_argument("--provider", choices=[p.value for p in ProviderType])
    parser.add_argument("--model", help="Model name for the fixed router")
    parser.add_argument("--routing", choices=[r.value for r in RoutingPolicy])
    parser.add_argument("--parallel", type=int, help="Max concurrent tasks per benchmark")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
        run = asyncio.run(run_evaluation_async(config))
    except (ConfigurationError, ValidationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    if run.aggregate.count == 0 and not run.cancelled:
        sys.exit(1)


if __name__ == "__main__":
    main()
