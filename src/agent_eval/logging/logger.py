"""Structured JSON-lines event log for evaluation runs."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from agent_eval.conversation import ToolCall
from agent_eval.llm.base import LLMResponse


class ExperimentLogger:
    """Appends every run event to <output_dir>/<run_id>.jsonl."""

    def __init__(self, run_id: str, output_dir: str | Path = "results"):
        self.run_id = run_id
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = self.output_dir / f"{run_id}.jsonl"
        self._events: list[dict[str, Any]] = []

    @property
    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    def _write_event(self, event: dict[str, Any]) -> None:
        event["run_id"] = self.run_id
        event["timestamp"] = time.time()
        self._events.append(event)
        with open(self.log_path, "a") as f:
            f.write(json.dumps(event, default=str) + "\n")

    def log_run_start(self, config: dict[str, Any]) -> None:
        self._write_event({"event": "run_start", "config": config})

    def log_routing(self, task_id: str, router: str, tier: str, model: str,
                    difficulty: str = "", estimated_cost_usd: float = 0.0) -> None:
        self._write_event({
            "event": "routing",
            "task_id": task_id,
            "router": router,
            "difficulty": difficulty,
            "tier": tier,
            "model": model,
            "estimated_cost_usd": estimated_cost_usd,
        })

    def log_llm_call(self, task_id: str, step: int, response: LLMResponse) -> None:
        usage = response.usage
        self._write_event({
            "event": "llm_call",
            "task_id": task_id,
            "step": step,
            "model": response.model,
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "cache_creation_input_tokens": usage.cache_creation_input_tokens,
            "cache_read_input_tokens": usage.cache_read_input_tokens,
            "cost_usd": round(response.cost_usd, 6),
            "stop_reason": response.stop_reason.value,
            "has_tool_use": response.has_tool_use,
        })

    def log_llm_error(self, task_id: str, step: int, error: Exception, attempt: int) -> None:
        self._write_event({
            "event": "llm_error",
            "task_id": task_id,
            "step": step,
            "attempt": attempt,
            "error_type": type(error).__name__,
            "message": str(error)[:1000],
        })

    def log_tool_call(self, task_id: str, tool_call: ToolCall) -> None:
        self._write_event({
            "event": "tool_call",
            "task_id": task_id,
            "tool_name": tool_call.tool_use.name,
            "success": tool_call.result.success,
            "exit_code": tool_call.result.exit_code,
            "error": tool_call.result.error,
            "duration_seconds": tool_call.duration_seconds,
        })

    def log_progress(self, event: Any) -> None:
        payload = asdict(event) if is_dataclass(event) else {"value": event}
        self._write_event({"event": "progress", "kind": type(event).__name__, **payload})

    def log_task_end(self, task_id: str, result: dict[str, Any]) -> None:
        self._write_event({"event": "task_end", "task_id": task_id, "result": result})

    def log_run_end(self, summary: dict[str, Any]) -> None:
        self._write_event({"event": "run_end", "summary": summary})
