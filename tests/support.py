"""Scripted provider and builders shared by the test modules."""

from __future__ import annotations

from itertools import count
from typing import Any, ClassVar, Sequence

from pydantic import PrivateAttr

from officellm.config import ManagerConfig, WorkerConfig
from officellm.core.errors import ProviderError
from officellm.core.messages import ProviderResponse, ToolInvocationRequest, Turn, Usage
from officellm.core.providers import BaseProvider
from officellm.core.tools import ToolDefinition

_CALL_IDS = count(1)


class ScriptedProvider(BaseProvider):
    """Returns queued responses in order and records every request.

    Once the script runs out the last entry repeats, so a provider that
    "always requests a tool" is a one-entry script. Exceptions in the
    script are raised instead of returned.
    """

    provider_type: ClassVar[str] = "scripted"

    model: str = "scripted-model"

    _script: list[Any] = PrivateAttr(default_factory=list)
    _requests: list[tuple[list[Turn], list[ToolDefinition]]] = PrivateAttr(default_factory=list)

    def queue(self, *responses: ProviderResponse | Exception) -> "ScriptedProvider":
        self._script.extend(responses)
        return self

    @property
    def requests(self) -> list[tuple[list[Turn], list[ToolDefinition]]]:
        return self._requests

    @property
    def sent_turns(self) -> list[list[Turn]]:
        return [turns for turns, _ in self._requests]

    async def chat(self, turns: Sequence[Turn], tools: Sequence[ToolDefinition] | None = None) -> ProviderResponse:
        self._requests.append(([t.model_copy(deep=True) for t in turns], list(tools or [])))
        if not self._script:
            raise ProviderError(self.provider_type, "script exhausted")
        entry = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(entry, Exception):
            raise entry
        return entry.model_copy(deep=True)


def usage(prompt: int, completion: int) -> Usage:
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


def reply(content: str, prompt: int = 0, completion: int = 0) -> ProviderResponse:
    """A response without tool calls."""
    return ProviderResponse(content=content, usage=usage(prompt, completion))


def request(name: str, arguments: dict[str, Any] | None = None, *, prompt: int = 0, completion: int = 0,
            content: str = "") -> ProviderResponse:
    """A response asking for exactly one tool call."""
    call = ToolInvocationRequest(id=f"call_{next(_CALL_IDS)}", name=name, arguments=arguments or {})
    return ProviderResponse(
        content=content, tool_calls=[call], usage=usage(prompt, completion), finish_reason="tool_calls"
    )


def request_many(*calls: tuple[str, dict[str, Any]], prompt: int = 0, completion: int = 0) -> ProviderResponse:
    """A response asking for several tool calls in one assistant turn."""
    requests = [
        ToolInvocationRequest(id=f"call_{next(_CALL_IDS)}", name=name, arguments=arguments)
        for name, arguments in calls
    ]
    return ProviderResponse(tool_calls=requests, usage=usage(prompt, completion), finish_reason="tool_calls")


ADD_TOOL = ToolDefinition(
    name="add",
    description="Add two numbers",
    parameters={
        "type": "object",
        "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
        "required": ["a", "b"],
    },
)


def add(args: dict[str, Any]) -> str:
    return str(args["a"] + args["b"])


def worker_config(provider: BaseProvider, name: str = "calc", **overrides: Any) -> WorkerConfig:
    values: dict[str, Any] = {
        "name": name,
        "description": "Performs arithmetic",
        "system_prompt": f"You are the {name} worker.",
        "provider": provider,
        "tools": [ADD_TOOL],
        "tool_implementations": {"add": add},
    }
    values.update(overrides)
    return WorkerConfig(**values)


def manager_config(provider: BaseProvider, **overrides: Any) -> ManagerConfig:
    values: dict[str, Any] = {
        "name": "manager",
        "description": "Coordinates workers",
        "system_prompt": "You are the manager.",
        "provider": provider,
    }
    values.update(overrides)
    return ManagerConfig(**values)
