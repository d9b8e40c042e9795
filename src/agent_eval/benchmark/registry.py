"""Lookup of benchmark adapters by name."""

from __future__ import annotations

from typing import Callable

from agent_eval.config import EvaluationConfig
from agent_eval.llm.errors import ConfigurationError
from agent_eval.llm.provider import ProviderPool
from agent_eval.logging.logger import ExperimentLogger

from .base import BenchmarkAdapter
from .swebench import SWEBenchAdapter

AdapterFactory = Callable[[EvaluationConfig, ProviderPool, ExperimentLogger | None], BenchmarkAdapter]

ADAPTERS: dict[str, AdapterFactory] = {
    "swebench": lambda config, pool, log: SWEBenchAdapter(config, pool=pool, experiment_logger=log),
}


def create_adapters(
    config: EvaluationConfig,
    pool: ProviderPool | None = None,
    experiment_logger: ExperimentLogger | None = None,
) -> list[BenchmarkAdapter]:
    """One adapter per configured benchmark, sharing one provider pool."""
    if not config.benchmarks:
        raise ConfigurationError("No benchmarks configured")
    unknown = [name for name in config.benchmarks if name not in ADAPTERS]
    if unknown:
        raise ConfigurationError(
            f"Unknown benchmark(s): {', '.join(unknown)}. Available: {', '.join(ADAPTERS)}"
        )
    pool = pool or ProviderPool(
        config.rate_limit, prompt_caching=config.feature_flags.prompt_caching,
    )
    return [ADAPTERS[name](config, pool, experiment_logger) for name in config.benchmarks]
