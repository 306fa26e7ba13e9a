"""
Agent engine — ``BaseAgent`` loop plus ``WorkerAgent`` and ``ManagerAgent``.

``BaseAgent`` provides:
    • Provider binding (built from the agent's ``ProviderConfig``)
    • The bounded loop: window → provider call → dispatch each request → repeat
    • Usage accumulation across every provider call of one execution
    • One conversation write per execution, whatever the outcome

``WorkerAgent`` dispatches requests to its tool dispatch table.
``ManagerAgent`` dispatches requests to workers, honoring a denylist.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, ClassVar, Mapping

from pydantic import BaseModel, PrivateAttr

from officellm.config import AgentConfig, ManagerConfig, WorkerConfig

from . import observability
from .context import build_context_window
from .errors import MissingToolImplementationError
from .logging_core import log_debug, log_error, log_exception, log_info, log_warning
from .messages import (
    AgentKind,
    Conversation,
    ExecutionResult,
    Task,
    ToolInvocationRequest,
    Turn,
    Usage,
    utc_now,
)
from .providers import BaseProvider, create_provider
from .tools import DelegationRequest, ToolDefinition, ToolDispatchTable

MANAGER_CEILING_MESSAGE = "Task execution stopped: Maximum iterations reached. Partial results may be available."
WORKER_CEILING_MESSAGE = "Worker execution stopped: Maximum iterations reached. Partial results may be available."

Dispatch = Callable[[ToolInvocationRequest, observability.AgentTrace], Awaitable[tuple[str, Usage]]]


def answer_pending_calls(turns: list[Turn], content: str) -> int:
    """Give every unanswered request of the last assistant turn a tool turn.

    Every request of an assistant turn ends up with exactly one tool turn,
    also when the round that issued it was aborted.
    Returns the number of tool turns appended.
    """
    for index in range(len(turns) - 1, -1, -1):
        if turns[index].role == "assistant":
            break
    else:
        return 0
    calls = turns[index].tool_calls or []
    answered = {turn.tool_call_id for turn in turns[index + 1:] if turn.role == "tool"}
    pending = [call for call in calls if call.id not in answered]
    for call in pending:
        turns.append(Turn.tool(call, content))
    return len(pending)


class BaseAgent(BaseModel):
    """Bounded provider/dispatch loop shared by managers and workers.

    ``store`` is any ``ConversationStore``; ``None`` skips persistence.
    """

    model_config = {"arbitrary_types_allowed": True}

    kind: ClassVar[AgentKind]
    ceiling_message: ClassVar[str]

    config: AgentConfig
    store: Any = None
    instance_id: str | None = None

    _provider: BaseProvider = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        self._provider = create_provider(self.config.provider)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def provider(self) -> BaseProvider:
        return self._provider

    @property
    def component(self) -> str:
        return "MANAGER" if self.kind is AgentKind.MANAGER else f"WORKER:{self.name}"

    # ── conversation ─────────────────────────────────────────────────────

    def _metadata(self, tools: list[ToolDefinition]) -> dict[str, Any]:
        return {
            "provider": self._provider.provider_type,
            "model": self._provider.model,
            "max_iterations": self.config.max_iterations,
            "context_window": self.config.context_window,
            "tools": [tool.name for tool in tools],
            "instance_id": self.instance_id,
        }

    def _new_conversation(self, first_user_turn: Turn) -> Conversation:
        return Conversation(
            agent_kind=self.kind,
            agent_name=self.name,
            turns=[Turn.system(self.config.system_prompt), first_user_turn],
        )

    async def _persist(self, conversation: Conversation) -> None:
        if self.store is None:
            return
        try:
            await self.store.store(conversation)
        except Exception:
            log_exception(self.component, "Failed to persist conversation %s", conversation.id)

    # ── loop ─────────────────────────────────────────────────────────────

    async def _run(self, conversation: Conversation, tools: list[ToolDefinition], dispatch: Dispatch) -> ExecutionResult:
        turns = conversation.turns
        max_iterations = self.config.max_iterations
        usage = Usage()
        iterations = 0
        result: ExecutionResult | None = None

        with observability.agent_trace(
            self.component,
            turns[-1].content,
            model=self._provider.identity,
            max_iterations=max_iterations,
        ) as trace:
            try:
                while iterations < max_iterations:
                    iterations += 1
                    log_info(self.component, "Iteration %d/%d", iterations, max_iterations)
                    window = build_context_window(turns, self.config.context_window)
                    trace.iteration(iterations, turns_sent=len(window), turns_total=len(turns))

                    response = await self._provider.chat(window, tools)
                    usage = usage + response.usage

                    log_debug(self.component, "Response: %s", response.content)
                    log_info(self.component, "Tool calls requested: %d", len(response.tool_calls))
                    trace.model_response(iterations, response)

                    if not response.tool_calls:
                        turns.append(Turn.assistant(response.content))
                        log_info(self.component, "Completed - no more tool calls needed")
                        result = ExecutionResult(success=True, content=response.content, usage=usage)
                        break

                    turns.append(Turn.assistant(response.content, response.tool_calls))
                    for call in response.tool_calls:
                        content, call_usage = await dispatch(call, trace)
                        usage = usage + call_usage
                        turns.append(Turn.tool(call, content))

                if result is None:
                    log_warning(self.component, "Maximum iterations (%d) reached", max_iterations)
                    trace.ceiling_reached(max_iterations)
                    result = ExecutionResult(success=True, content=self.ceiling_message, usage=usage)

            except Exception as e:
                log_error(self.component, "Execution failed: %s", e)
                trace.failed(e)
                answer_pending_calls(turns, f"Error: execution aborted: {e}")
                result = ExecutionResult(success=False, content="", error=str(e), usage=usage)

        result.iterations = iterations
        result.conversation_id = conversation.id
        conversation.updated_at = utc_now()
        conversation.metadata.update(self._metadata(tools))
        conversation.metadata["usage"] = usage.model_dump()
        await self._persist(conversation)
        return result


class WorkerAgent(BaseAgent):
    """Agent with its own tools, invocable directly or by a manager.

    History policy (``WorkerConfig.retain_history``):
        False — every ``invoke`` starts from ``[system, user]`` under a new
                conversation id.
        True  — ``invoke`` appends one user turn to the retained sequence and
                keeps the conversation id, so the store replaces it wholesale.
                The retained sequence belongs to this instance; callers must
                serialize calls to it. ``reset()`` drops it.
    """

    kind: ClassVar[AgentKind] = AgentKind.WORKER
    ceiling_message: ClassVar[str] = WORKER_CEILING_MESSAGE

    config: WorkerConfig

    _tools: ToolDispatchTable = PrivateAttr()
    _retained: Conversation | None = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        self._tools = ToolDispatchTable(self.config.tool_implementations)

    @property
    def tools(self) -> ToolDispatchTable:
        return self._tools

    @property
    def history(self) -> list[Turn]:
        """Copy of the retained turn sequence (empty in fresh-per-call mode)."""
        return list(self._retained.turns) if self._retained else []

    def reset(self) -> None:
        self._retained = None

    def delegation_definition(self) -> ToolDefinition:
        """How a manager sees this worker: a tool with the fixed delegation schema."""
        return ToolDefinition(
            name=self.name,
            description=self.config.description or f"{self.name} agent",
            parameters=DelegationRequest,
        )

    @staticmethod
    def format_params(params: Mapping[str, Any]) -> str:
        return "\n".join(f"{key}: {value}" for key, value in params.items())

    async def invoke(self, params: Mapping[str, Any]) -> ExecutionResult:
        """Run the worker loop on a raw argument payload."""
        user_turn = Turn.user(self.format_params(params))
        if self.config.retain_history and self._retained is not None:
            conversation = self._retained
            conversation.turns.append(user_turn)
        else:
            conversation = self._new_conversation(user_turn)
            if self.config.retain_history:
                self._retained = conversation
        return await self._run(conversation, list(self.config.tools), self._dispatch)

    async def _dispatch(self, call: ToolInvocationRequest, trace: observability.AgentTrace) -> tuple[str, Usage]:
        if call.name not in self._tools:
            log_error(self.component, "No implementation for tool: %s", call.name)
            raise MissingToolImplementationError(call.name)

        log_info(self.component, "Executing tool: %s", call.name)
        trace.tool_started(call)
        try:
            result = await self._tools.invoke(call.name, call.arguments)
        except Exception as e:
            log_warning(self.component, "Tool %s failed: %s", call.name, e)
            trace.tool_failed(call, e)
            return f'Error executing tool "{call.name}": {e}', Usage()

        log_debug(self.component, "Tool result: %s", result)
        trace.tool_finished(call, result)
        return result, Usage()


class ManagerAgent(BaseAgent):
    """Coordinator that sees every permitted worker as a tool."""

    kind: ClassVar[AgentKind] = AgentKind.MANAGER
    ceiling_message: ClassVar[str] = MANAGER_CEILING_MESSAGE

    config: ManagerConfig

    def resolve_worker(self, name: str, workers: Mapping[str, WorkerAgent]) -> WorkerAgent | None:
        if name in self.config.restricted_workers:
            return None
        return workers.get(name)

    def delegation_tools(self, workers: Mapping[str, WorkerAgent]) -> list[ToolDefinition]:
        return [
            worker.delegation_definition()
            for name, worker in workers.items()
            if name not in self.config.restricted_workers
        ]

    async def execute_task(self, task: Task, workers: Mapping[str, WorkerAgent]) -> ExecutionResult:
        conversation = self._new_conversation(Turn.user(task.render()))

        async def dispatch(call: ToolInvocationRequest, trace: observability.AgentTrace) -> tuple[str, Usage]:
            return await self._delegate(call, workers, trace)

        return await self._run(conversation, self.delegation_tools(workers), dispatch)

    async def _delegate(
        self,
        call: ToolInvocationRequest,
        workers: Mapping[str, WorkerAgent],
        trace: observability.AgentTrace,
    ) -> tuple[str, Usage]:
        worker = self.resolve_worker(call.name, workers)
        if worker is None:
            log_error(self.component, "Worker not found or restricted: %s", call.name)
            trace.delegation_rejected(call)
            return f"Error: Worker '{call.name}' not found or restricted", Usage()

        log_info(self.component, "Executing worker: %s", call.name)
        log_debug(self.component, "Worker parameters: %s", call.arguments)
        trace.delegation_started(call)

        outcome = await worker.invoke(call.arguments)

        log_debug(self.component, "Worker result: %s", outcome.content)
        trace.delegation_finished(call, outcome)
        content = outcome.content if outcome.success else f"Error: {outcome.error}"
        return content, outcome.usage
