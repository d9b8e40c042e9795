"""Routers that pick a provider config per task."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from agent_eval.benchmark.base import Task
from agent_eval.config import ProviderConfig, ProviderType, RoutingPolicy
from agent_eval.llm.errors import ConfigurationError

from .classifier import Difficulty, TaskClassifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierSpec:
    provider: ProviderType
    model: str
    estimated_cost_usd: float  # Rough per-task estimate
    max_tokens: int


class ModelTier(str, Enum):
    LOCAL_7B = "local_7b"
    LOCAL_32B = "local_32b"
    CLOUD_PREMIUM = "cloud_premium"
    CLOUD_BEST = "cloud_best"

    @property
    def spec(self) -> TierSpec:
        return TIERS[self]

    @property
    def is_cloud(self) -> bool:
        return self.spec.provider == ProviderType.ANTHROPIC


TIERS: dict[ModelTier, TierSpec] = {
    ModelTier.LOCAL_7B: TierSpec(ProviderType.OLLAMA, "qwen2.5-coder:7b", 0.0, 4096),
    ModelTier.LOCAL_32B: TierSpec(ProviderType.OLLAMA, "qwen2.5-coder:32b", 0.0, 4096),
    ModelTier.CLOUD_PREMIUM: TierSpec(ProviderType.ANTHROPIC, "claude-sonnet-4-20250514", 2.0, 8192),
    ModelTier.CLOUD_BEST: TierSpec(ProviderType.ANTHROPIC, "claude-opus-4-20250514", 10.0, 8192),
}

OLLAMA_BASE_URL = "http://localhost:11434/v1"


@dataclass
class RoutingDecision:
    task_id: str
    difficulty: Difficulty | None
    tier: ModelTier | None
    config: ProviderConfig
    estimated_cost_usd: float = 0.0


class Router(ABC):
    """Chooses a provider config for each task."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def decide(self, task: Task) -> RoutingDecision:
        ...

    def route(self, task: Task) -> ProviderConfig:
        return self.decide(task).config


class FixedRouter(Router):
    """Sends every task to the same provider."""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def name(self) -> str:
        return "fixed"

    def decide(self, task: Task) -> RoutingDecision:
        return RoutingDecision(task.instance_id, None, None, self.config)


class CascadingRouter(Router):
    """Escalates from local to cloud tiers only as difficulty requires."""

    def __init__(
        self,
        policy: RoutingPolicy = RoutingPolicy.LOCAL_FIRST,
        api_key: str | None = None,
        classifier: TaskClassifier | None = None,
    ):
        self.policy = policy
        if api_key is None:
            api_key = ProviderConfig(provider=ProviderType.ANTHROPIC).resolve_api_key()
        self.api_key = api_key
        self.classifier = classifier or TaskClassifier()

    @property
    def name(self) -> str:
        return "cascading"

    def select_tier(self, difficulty: Difficulty) -> ModelTier:
        if self.policy == RoutingPolicy.CLOUD_ONLY:
            if difficulty == Difficulty.HARD:
                return ModelTier.CLOUD_BEST
            return ModelTier.CLOUD_PREMIUM
        if difficulty == Difficulty.EASY:
            return ModelTier.LOCAL_7B
        if difficulty == Difficulty.MEDIUM:
            return ModelTier.LOCAL_32B
        return ModelTier.CLOUD_PREMIUM if self.api_key else ModelTier.LOCAL_32B

    def tier_to_config(self, tier: ModelTier) -> ProviderConfig:
        spec = tier.spec
        if tier.is_cloud:
            if not self.api_key:
                raise ConfigurationError(
                    f"Tier {tier.value} needs an Anthropic API key (set ANTHROPIC_API_KEY)"
                )
            return ProviderConfig(
                provider=spec.provider,
                model=spec.model,
                api_key=self.api_key,
                max_tokens=spec.max_tokens,
                temperature=0.3,
            )
        return ProviderConfig(
            provider=spec.provider,
            model=spec.model,
            base_url=OLLAMA_BASE_URL,
            max_tokens=spec.max_tokens,
            temperature=0.3,
        )

    def decide(self, task: Task) -> RoutingDecision:
        difficulty = task.complexity or self.classifier.classify(task)
        tier = self.select_tier(difficulty)
        config = self.tier_to_config(tier)
        logger.info(
            "Routing %s: difficulty=%s tier=%s model=%s est_cost=$%.2f",
            task.instance_id, difficulty.value, tier.value, config.model,
            tier.spec.estimated_cost_usd,
        )
        return RoutingDecision(
            task.instance_id, difficulty, tier, config, tier.spec.estimated_cost_usd,
        )
