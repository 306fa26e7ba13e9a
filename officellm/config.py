"""
Configuration models.

Ceilings, window size and instance id default from the environment, so a
``.env`` file loaded by the CLI is enough to tune a deployment::

    OFFICELLM_MANAGER_MAX_ITERATIONS=20
    OFFICELLM_WORKER_MAX_ITERATIONS=25
    OFFICELLM_CONTEXT_WINDOW=10
    OFFICELLM_INSTANCE_ID=office-1
"""

from __future__ import annotations

import os
from typing import Any, Callable, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from officellm.core.providers import BaseProvider, ProviderConfig
from officellm.core.tools import ToolDefinition
from officellm.memory.base import BaseMemoryConfig

_DEFAULT_MANAGER_MAX_ITERATIONS = 20
_DEFAULT_WORKER_MAX_ITERATIONS = 25
_DEFAULT_CONTEXT_WINDOW = 10


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class AgentConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str = ""
    system_prompt: str
    provider: Union[ProviderConfig, BaseProvider] = Field(union_mode="left_to_right")
    context_window: int = Field(
        default_factory=lambda: _env_int("OFFICELLM_CONTEXT_WINDOW", _DEFAULT_CONTEXT_WINDOW),
        ge=2,
        validate_default=True,
    )


class ManagerConfig(AgentConfig):
    max_iterations: int = Field(
        default_factory=lambda: _env_int("OFFICELLM_MANAGER_MAX_ITERATIONS", _DEFAULT_MANAGER_MAX_ITERATIONS),
        ge=1,
        validate_default=True,
    )
    restricted_workers: list[str] = Field(default_factory=list)


class WorkerConfig(AgentConfig):
    """Worker settings.

    ``tools`` are advertised to the provider; ``tool_implementations`` back
    them. Every advertised tool should have an implementation: a requested
    tool without one aborts the worker's execution.

    ``retain_history`` keeps the worker's turn sequence across direct
    invocations. The retained sequence is shared mutable state, so calls to
    the same worker instance must not overlap.
    """

    max_iterations: int = Field(
        default_factory=lambda: _env_int("OFFICELLM_WORKER_MAX_ITERATIONS", _DEFAULT_WORKER_MAX_ITERATIONS),
        ge=1,
        validate_default=True,
    )
    tools: list[ToolDefinition] = Field(default_factory=list)
    tool_implementations: dict[str, Callable[..., Any]] = Field(default_factory=dict)
    retain_history: bool = False


class OfficeConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    manager: ManagerConfig
    workers: list[WorkerConfig] = Field(default_factory=list)
    memory: Union[BaseMemoryConfig, dict[str, Any], None] = None
    instance_id: str = Field(default_factory=lambda: os.getenv("OFFICELLM_INSTANCE_ID") or f"inst_{uuid4().hex[:12]}")
