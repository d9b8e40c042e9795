"""Tests for difficulty classification and cascading routing."""

import pytest

from agent_eval.benchmark.base import Task
from agent_eval.config import EvaluationConfig, FeatureFlags, Milestone, ProviderType, RoutingPolicy
from agent_eval.llm.errors import ConfigurationError
from agent_eval.routing import (
    CascadingRouter,
    Difficulty,
    FixedRouter,
    ModelTier,
    TaskClassifier,
    create_router,
)
from agent_eval.routing.classifier import extract_signals


def _task(statement, complexity=None):
    return Task(instance_id="demo-1", problem_statement=statement, complexity=complexity)


def test_short_typo_fix_is_easy():
    assert TaskClassifier().classify(_task("Fix typo in README.md")) == Difficulty.EASY


def test_long_refactor_is_hard():
    statement = "Please refactor the session handling. " + "x" * 1200
    assert len(statement) > 1000
    assert TaskClassifier().classify(_task(statement)) == Difficulty.HARD


def test_architecture_keyword_overrides_short_length():
    assert TaskClassifier().classify_text("Improve performance of parser") == Difficulty.HARD


def test_many_file_mentions():
    three = "Update a.py, b.py and c.py to share the helper."
    assert TaskClassifier().classify_text(three) == Difficulty.MEDIUM

    six = " ".join(f"m{i}.py" for i in range(6))
    assert TaskClassifier().classify_text(six) == Difficulty.HARD


def test_medium_by_length_and_default_easy():
    assert TaskClassifier().classify_text("y" * 600) == Difficulty.MEDIUM
    assert TaskClassifier().classify_text("Something is off with the output") == Difficulty.EASY


def test_simple_keyword_with_many_files_is_not_easy():
    statement = "Rename the helper in a.py, b.py, c.py and d.py"
    assert extract_signals(statement).file_mentions == 4
    assert TaskClassifier().classify_text(statement) == Difficulty.MEDIUM


def test_classification_is_deterministic():
    classifier = TaskClassifier()
    statement = "Refactor utils.py and add tests"
    assert len({classifier.classify_text(statement) for _ in range(10)}) == 1


def test_local_first_hard_without_key_stays_local(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    router = CascadingRouter(RoutingPolicy.LOCAL_FIRST)
    decision = router.decide(_task("x", complexity=Difficulty.HARD))

    assert decision.tier == ModelTier.LOCAL_32B
    assert decision.config.provider == ProviderType.OLLAMA
    assert decision.config.model == "qwen2.5-coder:32b"
    assert decision.config.base_url == "http://localhost:11434/v1"
    assert decision.estimated_cost_usd == 0.0


def test_local_first_tiers_with_key():
    router = CascadingRouter(RoutingPolicy.LOCAL_FIRST, api_key="sk-test")
    assert router.select_tier(Difficulty.EASY) == ModelTier.LOCAL_7B
    assert router.select_tier(Difficulty.MEDIUM) == ModelTier.LOCAL_32B
    assert router.select_tier(Difficulty.HARD) == ModelTier.CLOUD_PREMIUM

    config = router.route(_task("x", complexity=Difficulty.HARD))
    assert config.provider == ProviderType.ANTHROPIC
    assert config.api_key == "sk-test"


def test_cloud_only_routing():
    router = CascadingRouter(RoutingPolicy.CLOUD_ONLY, api_key="sk-test")
    assert router.select_tier(Difficulty.EASY) == ModelTier.CLOUD_PREMIUM
    assert router.select_tier(Difficulty.HARD) == ModelTier.CLOUD_BEST
    assert router.route(_task("x", complexity=Difficulty.HARD)).model == "claude-opus-4-20250514"


def test_cloud_tier_without_key_is_configuration_error(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    router = CascadingRouter(RoutingPolicy.CLOUD_ONLY)
    with pytest.raises(ConfigurationError):
        router.route(_task("Fix typo in docs"))


def test_router_uses_classifier_when_complexity_missing():
    router = CascadingRouter(RoutingPolicy.LOCAL_FIRST, api_key="sk-test")
    decision = router.decide(_task("Fix typo in README.md"))
    assert decision.difficulty == Difficulty.EASY
    assert decision.tier == ModelTier.LOCAL_7B


def test_create_router_follows_feature_flags():
    assert isinstance(create_router(EvaluationConfig()), FixedRouter)

    cascading = create_router(EvaluationConfig(milestone=Milestone.M4))
    assert isinstance(cascading, CascadingRouter)
    assert cascading.name == "cascading"

    explicit = EvaluationConfig(features=FeatureFlags(routing_cascade=True))
    assert isinstance(create_router(explicit), CascadingRouter)
