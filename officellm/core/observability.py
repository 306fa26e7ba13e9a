"""
Execution traces — one trace per submitted task, one scope per agent run.

The manager opens the trace; every worker it delegates to joins it as a
nested scope, so a trace reads as the whole delegation tree in order::

    with agent_trace("MANAGER", task_text, model="openai/gpt-4o") as trace:
        trace.iteration(1, turns_sent=2, turns_total=2)
        trace.model_response(1, response)
        trace.delegation_started(call)

Events go to an append-only JSONL file and to registered sinks.

Environment:
    OFFICELLM_TRACE_ENABLED     — "true" (default) / "false"
    OFFICELLM_TRACE_PATH        — default ``data/traces.jsonl``
    OFFICELLM_TRACE_MAX_DETAIL  — clip strings to this length (default 2000)
"""

from __future__ import annotations

import itertools
import os
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from .messages import utc_now

if TYPE_CHECKING:
    from .messages import ExecutionResult, ProviderResponse, ToolInvocationRequest

Sink = Callable[[dict], None]

_TRACE_ID: ContextVar[str | None] = ContextVar("officellm_trace_id", default=None)
_SEQ = itertools.count(1)
_WRITE_LOCK = threading.Lock()
_SINKS: list[Sink] = []


class TraceEvent(BaseModel):
    id: str = Field(default_factory=lambda: f"evt_{uuid4().hex[:12]}")
    seq: int = Field(default_factory=lambda: next(_SEQ))
    ts: datetime = Field(default_factory=utc_now)
    type: str
    agent: str | None = None
    trace_id: str | None = None
    message: str | None = None
    status: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


def _enabled() -> bool:
    return os.getenv("OFFICELLM_TRACE_ENABLED", "true").lower() in ("true", "1", "yes")


def _trace_path() -> Path:
    return Path(os.getenv("OFFICELLM_TRACE_PATH", "data/traces.jsonl"))


def _max_detail() -> int:
    return int(os.getenv("OFFICELLM_TRACE_MAX_DETAIL", "2000"))


def _clip(value: Any, limit: int) -> Any:
    """Make ``value`` JSON-friendly, shortening long strings."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    if isinstance(value, str):
        return value if limit <= 0 or len(value) <= limit else value[: max(0, limit - 3)] + "..."
    if isinstance(value, dict):
        return {str(k): _clip(v, limit) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_clip(item, limit) for item in value]
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return _clip(str(value), limit)


def register_sink(sink: Sink) -> None:
    """Register a callback that receives every event as a JSON-ready dict."""
    if sink not in _SINKS:
        _SINKS.append(sink)


def unregister_sink(sink: Sink) -> None:
    if sink in _SINKS:
        _SINKS.remove(sink)


def current_trace_id() -> str | None:
    return _TRACE_ID.get()


def log_event(
    event_type: str,
    message: str | None = None,
    *,
    agent: str | None = None,
    trace_id: str | None = None,
    status: str | None = None,
    meta: dict | None = None,
) -> dict | None:
    """Record one event; returns it as a dict, or None when tracing is off. Never raises."""
    if not _enabled():
        return None

    limit = _max_detail()
    event = TraceEvent(
        type=event_type,
        agent=agent,
        trace_id=trace_id or _TRACE_ID.get(),
        message=_clip(message, limit) if message else None,
        status=status,
        meta=_clip(meta or {}, limit),
    )
    payload = event.model_dump(mode="json")

    try:
        path = _trace_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with _WRITE_LOCK, path.open("a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")
    except OSError:
        pass

    for sink in list(_SINKS):
        try:
            sink(payload)
        except Exception:
            continue
    return payload


class AgentTrace:
    """Event recorder for one agent run, bound to its component name and trace."""

    def __init__(self, agent: str, trace_id: str) -> None:
        self.agent = agent
        self.trace_id = trace_id
        self.iterations = 0

    def emit(self, event_type: str, message: str | None = None, *, status: str | None = None, **meta: Any) -> None:
        log_event(event_type, message, agent=self.agent, trace_id=self.trace_id, status=status, meta=meta)

    # ── loop ─────────────────────────────────────────────────────────────

    def iteration(self, iteration: int, *, turns_sent: int, turns_total: int) -> None:
        self.iterations = iteration
        self.emit("iteration_start", iteration=iteration, turns_sent=turns_sent, turns_total=turns_total)

    def model_response(self, iteration: int, response: ProviderResponse) -> None:
        self.emit(
            "model_end",
            response.content,
            iteration=iteration,
            tool_calls=[call.name for call in response.tool_calls],
            finish_reason=response.finish_reason,
            usage=response.usage,
        )

    def ceiling_reached(self, max_iterations: int) -> None:
        self.emit("max_iterations", max_iterations=max_iterations)

    def failed(self, error: BaseException) -> None:
        self.emit("error", status="error", iteration=self.iterations, error=str(error))

    # ── worker tools ─────────────────────────────────────────────────────

    def tool_started(self, call: ToolInvocationRequest) -> None:
        self.emit("tool_start", tool=call.name, call_id=call.id, arguments=call.arguments)

    def tool_finished(self, call: ToolInvocationRequest, result: str) -> None:
        self.emit("tool_end", result, tool=call.name, call_id=call.id)

    def tool_failed(self, call: ToolInvocationRequest, error: BaseException) -> None:
        self.emit("tool_error", status="error", tool=call.name, call_id=call.id, error=str(error))

    # ── manager delegation ───────────────────────────────────────────────

    def delegation_started(self, call: ToolInvocationRequest) -> None:
        self.emit("delegation_start", worker=call.name, call_id=call.id)

    def delegation_finished(self, call: ToolInvocationRequest, outcome: ExecutionResult) -> None:
        self.emit(
            "delegation_end",
            outcome.content or outcome.error,
            status=None if outcome.success else "error",
            worker=call.name,
            call_id=call.id,
            iterations=outcome.iterations,
            usage=outcome.usage,
        )

    def delegation_rejected(self, call: ToolInvocationRequest) -> None:
        self.emit("delegation_rejected", status="error", worker=call.name, call_id=call.id)


@contextmanager
def agent_trace(agent: str, task: str | None = None, **meta: Any) -> Iterator[AgentTrace]:
    """Open a trace for a top-level run, or join the current one as a nested agent scope."""
    parent = _TRACE_ID.get()
    is_root = parent is None
    trace = AgentTrace(agent, parent or f"trc_{uuid4().hex}")
    token = _TRACE_ID.set(trace.trace_id) if is_root else None
    start = time.perf_counter()

    trace.emit("trace_start" if is_root else "agent_start", task, **meta)
    try:
        yield trace
    finally:
        trace.emit(
            "trace_end" if is_root else "agent_end",
            duration_ms=int((time.perf_counter() - start) * 1000),
            iterations=trace.iterations,
        )
        if token is not None:
            _TRACE_ID.reset(token)


def read_trace(trace_id: str, path: Path | None = None) -> list[TraceEvent]:
    """Return the events of one trace in emission order."""
    source = path or _trace_path()
    if not source.exists():
        return []
    events: list[TraceEvent] = []
    with source.open("r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line:
                continue
            try:
                event = TraceEvent.model_validate_json(line)
            except ValidationError:
                continue
            if event.trace_id == trace_id:
                events.append(event)
    events.sort(key=lambda e: e.seq)
    return events
