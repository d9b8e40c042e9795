"""Client factory and the per-run pool that shares limiters between tasks."""

from __future__ import annotations

import threading

from agent_eval.config import ProviderConfig, ProviderType, RateLimitConfig

from .anthropic import AnthropicClient
from .base import LLMClient
from .errors import ApiKeyError, ConfigurationError
from .openai_compat import OpenAICompatClient
from .rate_limiter import RateLimitedClient, RateLimiter


def create_client(
    config: ProviderConfig,
    rate_limiter: RateLimiter | None = None,
    prompt_caching: bool = True,
) -> LLMClient:
    """Build a client for a provider config, optionally rate limited."""
    api_key = config.resolve_api_key()
    if config.provider == ProviderType.ANTHROPIC:
        if not api_key:
            raise ApiKeyError("ANTHROPIC_API_KEY is not set")
        client: LLMClient = AnthropicClient(
            model=config.model,
            api_key=api_key,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            prompt_caching=prompt_caching,
        )
    elif config.provider in (ProviderType.GITHUB, ProviderType.OLLAMA, ProviderType.OPENAI_COMPAT):
        if config.provider == ProviderType.GITHUB and not api_key:
            raise ApiKeyError("GITHUB_TOKEN is not set")
        base_url = config.resolve_base_url()
        if not base_url:
            raise ConfigurationError(f"No base URL for provider {config.provider.value}")
        client = OpenAICompatClient(
            model=config.model,
            base_url=base_url,
            api_key=api_key,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    else:
        raise ConfigurationError(f"Unsupported provider: {config.provider}")

    if rate_limiter is not None:
        return RateLimitedClient(client, rate_limiter)
    return client


class ProviderPool:
    """Hands out one client (and one shared limiter) per backend.

    Cloud backends get a limiter; local servers are not rate limited.
    """

    def __init__(
        self,
        rate_limit: RateLimitConfig | None = None,
        prompt_caching: bool = True,
    ):
        self.rate_limit = rate_limit or RateLimitConfig()
        self.prompt_caching = prompt_caching
        self._clients: dict[tuple[str, str, str], LLMClient] = {}
        self._limiters: dict[tuple[str, str, str], RateLimiter] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(config: ProviderConfig) -> tuple[str, str, str]:
        return (config.provider.value, config.model, config.resolve_base_url() or "")

    def get(self, config: ProviderConfig) -> LLMClient:
        key = self._key(config)
        with self._lock:
            if key not in self._clients:
                limiter = RateLimiter(self.rate_limit) if config.is_cloud else None
                self._clients[key] = create_client(
                    config, rate_limiter=limiter, prompt_caching=self.prompt_caching,
                )
                if limiter is not None:
                    self._limiters[key] = limiter
            return self._clients[key]

    def limiter_for(self, config: ProviderConfig) -> RateLimiter | None:
        return self._limiters.get(self._key(config))
