"""Per-task agent control loop."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from agent_eval.benchmark.base import Task
from agent_eval.config import AgentConfig
from agent_eval.conversation import Conversation, ToolCall
from agent_eval.llm.base import LLMClient, LLMResponse, StopReason
from agent_eval.llm.errors import LLMError
from agent_eval.logging.logger import ExperimentLogger
from agent_eval.metrics import MetricsCollector, TaskMetrics
from agent_eval.tools.base import ToolSet

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AgentResult:
    task_id: str
    state: AgentState
    metrics: TaskMetrics
    conversation: Conversation = field(repr=False, default_factory=Conversation)
    final_text: str = ""
    stop_reason: StopReason | None = None
    truncated: bool = False
    error: str = ""

    @property
    def completed(self) -> bool:
        return self.state == AgentState.DONE


class Agent:
    """Drives one model through read/edit/execute steps until it stops.

    Steps are strictly sequential. Retryable provider errors are retried
    after the error's own delay; anything else fails the task.
    """

    def __init__(
        self,
        client: LLMClient,
        tools: ToolSet,
        config: AgentConfig | None = None,
        system_prompt: str | None = None,
        logger: ExperimentLogger | None = None,
    ):
        self.client = client
        self.tools = tools
        self.config = config or AgentConfig()
        self.system_prompt = self.config.system_prompt if system_prompt is None else system_prompt
        self.logger = logger
        self.state = AgentState.AWAITING_MODEL

    async def run(self, task: Task, prompt: str | None = None) -> AgentResult:
        collector = MetricsCollector(task.instance_id)
        conversation = Conversation()
        conversation.add_user_message(prompt or task.problem_statement)
        self.state = AgentState.AWAITING_MODEL
        schemas = self.tools.to_api_schemas()
        last: LLMResponse | None = None

        for step in range(1, self.config.max_steps + 1):
            collector.metrics.steps = step
            try:
                response = await self._call_model(task, conversation, schemas, step, collector)
            except LLMError as e:
                logger.warning("Task %s failed at step %d: %s", task.instance_id, step, e)
                self.state = AgentState.FAILED
                metrics = collector.finish()
                metrics.error = str(e)
                return AgentResult(
                    task.instance_id, self.state, metrics, conversation, error=str(e),
                )

            last = response
            collector.record_response(response)
            if self.logger:
                self.logger.log_llm_call(task.instance_id, step, response)
            conversation.add_assistant_message(response.content)

            if not response.has_tool_use:
                self.state = AgentState.DONE
                return AgentResult(
                    task.instance_id, self.state, collector.finish(), conversation,
                    final_text=response.text_content, stop_reason=response.stop_reason,
                )

            self.state = AgentState.EXECUTING_TOOLS
            calls = await self._execute_tools(task, response, collector)
            conversation.add_tool_results(calls, max_chars=self.config.max_tool_output_chars)
            self.state = AgentState.AWAITING_MODEL

        logger.info("Task %s hit the %d step budget", task.instance_id, self.config.max_steps)
        self.state = AgentState.DONE
        metrics = collector.finish()
        metrics.truncated = True
        return AgentResult(
            task.instance_id, self.state, metrics, conversation,
            final_text=last.text_content if last else "",
            stop_reason=last.stop_reason if last else None,
            truncated=True,
        )

    async def _call_model(
        self,
        task: Task,
        conversation: Conversation,
        schemas: list[dict],
        step: int,
        collector: MetricsCollector,
    ) -> LLMResponse:
        attempt = 0
        while True:
            try:
                return await self.client.send_message(
                    conversation.messages, tools=schemas or None, system=self.system_prompt,
                )
            except LLMError as e:
                attempt += 1
                if self.logger:
                    self.logger.log_llm_error(task.instance_id, step, e, attempt)
                if not e.is_retryable or attempt > self.config.max_retries:
                    raise
                delay = min(e.retry_delay or 0.0, self.config.max_retry_delay_seconds)
                logger.info(
                    "Retryable error on %s (attempt %d/%d), retrying in %.1fs: %s",
                    task.instance_id, attempt, self.config.max_retries, delay, e,
                )
                collector.record_retry()
                await asyncio.sleep(delay)

    async def _execute_tools(
        self,
        task: Task,
        response: LLMResponse,
        collector: MetricsCollector,
    ) -> list[ToolCall]:
        calls = []
        for tool_use in response.tool_uses:
            start = time.monotonic()
            result = await self.tools.execute(tool_use.name, tool_use.input)
            call = ToolCall(tool_use, result, duration_seconds=time.monotonic() - start)
            collector.record_tool_call(tool_use.name, result.success)
            if self.logger:
                self.logger.log_tool_call(task.instance_id, call)
            calls.append(call)
        return calls
