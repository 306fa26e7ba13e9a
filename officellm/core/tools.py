"""
Tool definitions and dispatch tables.

A worker advertises ``ToolDefinition`` objects to its provider and resolves
the provider's invocation requests through a ``ToolDispatchTable``. The two
are independent: a definition without an implementation is an integration
defect that surfaces only when the model actually asks for that tool.

MCP servers can back a dispatch table through ``initialize_mcp_tools``.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Iterator, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field

from .logging_core import log_warning
from .messages import TaskPriority

ToolImplementation = Callable[[dict[str, Any]], Union[str, Awaitable[str], Any]]


class ToolDefinition(BaseModel):
    """Name, description and argument schema of an invocable tool.

    ``parameters`` is either a pydantic model class or a JSON-schema dict.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str = ""
    parameters: Any = Field(default_factory=lambda: {"type": "object", "properties": {}})

    def json_schema(self) -> dict[str, Any]:
        params = self.parameters
        if isinstance(params, type) and issubclass(params, BaseModel):
            return params.model_json_schema()
        if isinstance(params, dict):
            return params
        raise TypeError(f"Unsupported parameter schema for tool '{self.name}': {type(params).__name__}")


class DelegationRequest(BaseModel):
    """Fixed argument schema the manager sees for every worker."""

    task: str = Field(description="The task to perform, in detail")
    context: str = Field(default="", description="The context of the task")
    metadata: dict[str, Any] = Field(description="The metadata of the task")
    priority: TaskPriority = Field(default="high", description="Task priority level")


class ToolDispatchTable:
    """Explicit mapping from tool name to implementation callable."""

    def __init__(self, implementations: Mapping[str, ToolImplementation] | None = None) -> None:
        self._implementations: dict[str, ToolImplementation] = {}
        for name, fn in (implementations or {}).items():
            self.register(name, fn)

    def register(self, name: str, fn: ToolImplementation) -> None:
        if not callable(fn):
            raise TypeError(f"Implementation for tool '{name}' is not callable")
        self._implementations[name] = fn

    def lookup(self, name: str) -> ToolImplementation | None:
        return self._implementations.get(name)

    def names(self) -> list[str]:
        return list(self._implementations)

    def __contains__(self, name: object) -> bool:
        return name in self._implementations

    def __iter__(self) -> Iterator[str]:
        return iter(self._implementations)

    def __len__(self) -> int:
        return len(self._implementations)

    async def invoke(self, name: str, args: dict[str, Any]) -> str:
        """Call a registered implementation; raises ``KeyError`` when absent."""
        fn = self._implementations[name]
        result = fn(args)
        if inspect.isawaitable(result):
            result = await result
        return result if isinstance(result, str) else str(result)


async def initialize_mcp_tools(
    server_config: dict[str, Any],
    tool_names: list[str],
) -> tuple[list[ToolDefinition], ToolDispatchTable, Any]:
    """Connect to an MCP server and expose the selected tools to a worker.

    Returns ``(definitions, dispatch_table, client)``; the caller owns the
    client and should ``await client.__aexit__(None, None, None)`` when done.
    """
    from fastmcp import Client

    command = server_config.get("command")
    if not command:
        raise ValueError("server_config must contain 'command' key")

    client = Client({"mcpServers": {"server": {"command": command, "args": server_config.get("args", [])}}})
    await client.__aenter__()
    available = {tool.name: tool for tool in await client.list_tools()}

    definitions: list[ToolDefinition] = []
    table = ToolDispatchTable()
    for name in tool_names:
        tool = available.get(name)
        if tool is None:
            log_warning("MCP", "Requested tool not found: %s. Available: %s", name, sorted(available))
            continue
        definitions.append(
            ToolDefinition(
                name=name,
                description=getattr(tool, "description", None) or "MCP tool",
                parameters=getattr(tool, "inputSchema", None) or {"type": "object", "properties": {}},
            )
        )

        async def _call(args: dict[str, Any], tool_name: str = name) -> str:
            result = await client.call_tool(tool_name, args)
            content = getattr(result, "content", None)
            if content is not None:
                return "\n".join(part.text for part in content if hasattr(part, "text"))
            return str(result)

        table.register(name, _call)

    return definitions, table, client
