"""Fixed-window admission control for one provider."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from agent_eval.config import RateLimitConfig

from .base import LLMClient, LLMResponse, Message
from .streaming import MessageDelta, MessageStart, MessageStop, StreamAccumulator

logger = logging.getLogger(__name__)


@dataclass
class RateLimitStatus:
    requests_used: int
    requests_limit: int
    input_tokens_used: int
    input_tokens_limit: int
    output_tokens_used: int
    output_tokens_limit: int
    window_remaining: float

    @property
    def requests_pct(self) -> float:
        return _pct(self.requests_used, self.requests_limit)

    @property
    def input_pct(self) -> float:
        return _pct(self.input_tokens_used, self.input_tokens_limit)

    @property
    def output_pct(self) -> float:
        return _pct(self.output_tokens_used, self.output_tokens_limit)


def _pct(used: int, limit: int) -> float:
    return used / limit * 100 if limit else 0.0


class RateLimiter:
    """Shared by every concurrent caller of one provider.

    All counter mutations happen under a single lock; waiting callers sleep
    outside it so other callers are not blocked.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._window_start = clock()
        self._requests = 0
        self._input_tokens = 0
        self._output_tokens = 0

    def _reset_if_elapsed(self, now: float) -> None:
        if now - self._window_start >= self.config.window_seconds:
            self._window_start = now
            self._requests = 0
            self._input_tokens = 0
            self._output_tokens = 0

    def _fits(self, est_input: int, est_output: int) -> bool:
        return (
            self._requests < self.config.max_requests_per_minute
            and self._input_tokens + est_input <= self.config.max_input_tokens_per_minute
            and self._output_tokens + est_output <= self.config.max_output_tokens_per_minute
        )

    async def acquire(self, est_input: int = 0, est_output: int = 0) -> None:
        """Wait until the estimate fits in the current window, then reserve it."""
        # An estimate above a limit could never fit; admit it into an empty window
        est_input = min(max(est_input, 0), self.config.max_input_tokens_per_minute)
        est_output = min(max(est_output, 0), self.config.max_output_tokens_per_minute)

        while True:
            async with self._lock:
                now = self._clock()
                self._reset_if_elapsed(now)
                if self._fits(est_input, est_output):
                    self._requests += 1
                    self._input_tokens += est_input
                    self._output_tokens += est_output
                    return
                wait = self.config.window_seconds - (now - self._window_start)

            logger.debug("Rate limit reached, waiting %.2fs for window reset", wait)
            await asyncio.sleep(max(wait, 0.0))

    async def record_actual_usage(self, input_tokens: int, output_tokens: int) -> None:
        """Raise counters to at least the observed usage; never lower them."""
        async with self._lock:
            self._input_tokens = max(self._input_tokens, input_tokens)
            self._output_tokens = max(self._output_tokens, output_tokens)

    async def status(self) -> RateLimitStatus:
        async with self._lock:
            elapsed = self._clock() - self._window_start
            return RateLimitStatus(
                requests_used=self._requests,
                requests_limit=self.config.max_requests_per_minute,
                input_tokens_used=self._input_tokens,
                input_tokens_limit=self.config.max_input_tokens_per_minute,
                output_tokens_used=self._output_tokens,
                output_tokens_limit=self.config.max_output_tokens_per_minute,
                window_remaining=max(self.config.window_seconds - elapsed, 0.0),
            )


def estimate_input_tokens(
    messages: list[Message],
    tools: list[dict[str, Any]] | None = None,
    system: str = "",
) -> int:
    """Rough token estimate: four characters per token."""
    chars = len(system)
    for message in messages:
        chars += len(str(message.content))
    if tools:
        chars += sum(len(str(t)) for t in tools)
    return chars // 4


class RateLimitedClient(LLMClient):
    """Wraps a client so every call passes through a shared limiter."""

    def __init__(self, inner: LLMClient, limiter: RateLimiter, est_output_tokens: int = 1024):
        self.inner = inner
        self.limiter = limiter
        self.est_output_tokens = est_output_tokens

    @property
    def model_name(self) -> str:
        return self.inner.model_name

    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        system: str = "",
    ) -> LLMResponse:
        await self.limiter.acquire(
            estimate_input_tokens(messages, tools, system), self.est_output_tokens,
        )
        response = await self.inner.send_message(messages, tools=tools, system=system)
        await self.limiter.record_actual_usage(
            response.usage.total_input_tokens, response.usage.output_tokens,
        )
        return response

    async def send_message_stream(self, messages, tools=None, system=""):
        await self.limiter.acquire(
            estimate_input_tokens(messages, tools, system), self.est_output_tokens,
        )
        # Only usage is folded here; content and errors pass through untouched
        acc = StreamAccumulator()
        async for event in self.inner.send_message_stream(messages, tools=tools, system=system):
            if isinstance(event, (MessageStart, MessageDelta)):
                acc.push(event)
            elif isinstance(event, MessageStop):
                await self.limiter.record_actual_usage(
                    acc.usage.total_input_tokens, acc.usage.output_tokens,
                )
            yield event
