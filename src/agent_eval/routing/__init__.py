"""Task routing: difficulty classification and model tier selection."""

from agent_eval.config import EvaluationConfig

from .cascade import CascadingRouter, FixedRouter, ModelTier, Router, RoutingDecision
from .classifier import Difficulty, TaskClassifier


def create_router(config: EvaluationConfig) -> Router:
    """Factory function to create a router from config."""
    if config.feature_flags.routing_cascade:
        return CascadingRouter(config.routing, api_key=config.provider.api_key)
    return FixedRouter(config.provider)
