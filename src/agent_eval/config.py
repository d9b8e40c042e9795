"""Configuration data models for evaluation runs."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import BaseModel, Field

from agent_eval.llm.errors import ConfigurationError


class ProviderType(str, Enum):
    ANTHROPIC = "anthropic"
    GITHUB = "github"
    OLLAMA = "ollama"
    OPENAI_COMPAT = "openai_compat"  # vLLM and other local servers


# Environment variable consulted per cloud backend when no key is supplied
API_KEY_ENV_VARS: dict[ProviderType, str] = {
    ProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderType.GITHUB: "GITHUB_TOKEN",
}

DEFAULT_BASE_URLS: dict[ProviderType, str] = {
    ProviderType.GITHUB: "https://models.inference.ai.azure.com",
    ProviderType.OLLAMA: "http://localhost:11434/v1",
    ProviderType.OPENAI_COMPAT: "http://localhost:8000/v1",
}


class ProviderConfig(BaseModel):
    """A reachable model backend: provider, model, credentials and limits."""
    provider: ProviderType = ProviderType.ANTHROPIC
    model: str = "claude-sonnet-4-20250514"
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.3

    @property
    def is_cloud(self) -> bool:
        return self.provider in API_KEY_ENV_VARS

    def resolve_api_key(self, env: Mapping[str, str] | None = None) -> str | None:
        """Return the configured key, falling back to the provider's env var."""
        if self.api_key:
            return self.api_key
        var = API_KEY_ENV_VARS.get(self.provider)
        if var is None:
            return None
        env = os.environ if env is None else env
        return env.get(var) or None

    def resolve_base_url(self) -> str | None:
        return self.base_url or DEFAULT_BASE_URLS.get(self.provider)


class RateLimitConfig(BaseModel):
    """Per-provider quota for fixed-window admission control.

    Defaults match the published Sonnet tier-1 limits.
    """
    max_requests_per_minute: int = 50
    max_input_tokens_per_minute: int = 30_000
    max_output_tokens_per_minute: int = 8_000
    window_seconds: float = 60.0

    @classmethod
    def conservative(cls) -> RateLimitConfig:
        """80% of the default limits, leaving headroom for other clients."""
        return cls(
            max_requests_per_minute=40,
            max_input_tokens_per_minute=24_000,
            max_output_tokens_per_minute=6_400,
        )


class RoutingPolicy(str, Enum):
    LOCAL_FIRST = "local_first"
    CLOUD_ONLY = "cloud_only"


class Milestone(str, Enum):
    BASELINE = "baseline"
    M1 = "m1"
    M2 = "m2"
    M3 = "m3"
    M4 = "m4"


class FeatureFlags(BaseModel):
    """Feature toggles compared across milestones.

    routing_multi_model, context_embeddings and failure_memory have no
    consumer yet; they are recorded with each run for provenance only.
    """
    context_ast: bool = True
    prompt_caching: bool = True
    tree_sitter_validation: bool = True
    smart_test_selection: bool = False
    routing_multi_model: bool = False
    routing_cascade: bool = False
    context_embeddings: bool = False
    failure_memory: bool = False

    @classmethod
    def for_milestone(cls, milestone: Milestone | str) -> FeatureFlags:
        milestone = Milestone(milestone)
        flags = cls()
        if milestone == Milestone.BASELINE:
            return flags
        if milestone == Milestone.M1:
            flags.context_ast = False
            return flags
        # Later milestones are cumulative
        flags.smart_test_selection = True
        if milestone in (Milestone.M3, Milestone.M4):
            flags.routing_multi_model = True
        if milestone == Milestone.M4:
            flags.routing_cascade = True
            flags.context_embeddings = True
            flags.failure_memory = True
        return flags

    def enabled(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value]


class AgentConfig(BaseModel):
    """Per-task control loop settings."""
    max_steps: int = 25
    max_retries: int = 3
    max_retry_delay_seconds: float = 30.0
    tool_timeout_seconds: int = 120
    max_tool_output_chars: int = 20_000
    system_prompt: str = (
        "You are a software engineering agent working inside a git repository. "
        "Use the available tools to read, search and edit files, run shell "
        "commands and run tests. Make the smallest change that resolves the "
        "issue, verify it with the relevant tests, then reply with a short "
        "summary of what you changed."
    )


class DatasetSource(str, Enum):
    VERIFIED = "verified"
    LITE = "lite"
    FULL = "full"
    LOCAL = "local"


class DatasetConfig(BaseModel):
    source: DatasetSource = DatasetSource.VERIFIED
    path: str | None = None  # Required for local files
    split: str = "test"
    instance_ids: list[str] = Field(default_factory=list)


class EvaluationConfig(BaseModel):
    """Configuration for a full evaluation run."""
    benchmarks: list[str] = Field(default_factory=lambda: ["swebench"])
    task_limit: int | None = None
    max_concurrent_benchmarks: int = 2
    max_concurrent_tasks: int = 1
    milestone: Milestone = Milestone.BASELINE
    features: FeatureFlags | None = None
    dataset: DatasetConfig = Field(default_factory=DatasetConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    routing: RoutingPolicy = RoutingPolicy.LOCAL_FIRST
    agent: AgentConfig = Field(default_factory=AgentConfig)
    workspace_dir: str = "/tmp/agent-eval-workspace"
    output_dir: str = "results"

    @property
    def feature_flags(self) -> FeatureFlags:
        """Explicit flags win over the milestone preset."""
        return self.features or FeatureFlags.for_milestone(self.milestone)


def parse_benchmark_list(text: str) -> list[str]:
    """Split a comma-separated benchmark list, dropping empty and repeated entries."""
    return list(dict.fromkeys(part.strip() for part in text.split(",") if part.strip()))


def load_config(path: str | Path) -> EvaluationConfig:
    """Load evaluation config from YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    benchmarks = data.get("benchmarks")
    if isinstance(benchmarks, str):
        data["benchmarks"] = parse_benchmark_list(benchmarks)
    return EvaluationConfig(**data)
