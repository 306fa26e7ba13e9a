"""
Conversation data model.

Hierarchy:
    Usage                 — token counters, summed across provider calls
    ToolInvocationRequest — assistant-authored call to a named tool/worker
    Turn                  — single conversation message
    ProviderResponse      — what a provider returns for one chat call
    Task / ExecutionResult — task submission surface
    Conversation          — persisted turn sequence with owner metadata
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_conversation_id() -> str:
    return f"conv_{uuid4().hex}"


class AgentKind(str, Enum):
    MANAGER = "manager"
    WORKER = "worker"


TaskPriority = Literal["low", "medium", "high"]
Role = Literal["system", "user", "assistant", "tool"]


class Usage(BaseModel):
    """Prompt/completion/total token counters."""

    prompt_tokens: NonNegativeInt = 0
    completion_tokens: NonNegativeInt = 0
    total_tokens: NonNegativeInt = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ToolInvocationRequest(BaseModel):
    """A request, carried by an assistant turn, to call one tool or worker."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Turn(BaseModel):
    """A single message in a conversation."""

    role: Role
    content: str = ""
    tool_calls: list[ToolInvocationRequest] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    @model_validator(mode="after")
    def _check_role_fields(self) -> "Turn":
        if self.tool_calls and self.role != "assistant":
            raise ValueError("only assistant turns may carry tool calls")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool turns require a tool_call_id")
        return self

    @classmethod
    def system(cls, content: str) -> "Turn":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolInvocationRequest] | None = None) -> "Turn":
        return cls(role="assistant", content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, call: ToolInvocationRequest, content: str) -> "Turn":
        return cls(role="tool", content=content, tool_call_id=call.id, name=call.name)


class ProviderResponse(BaseModel):
    content: str = ""
    tool_calls: list[ToolInvocationRequest] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    finish_reason: str = "stop"


class Task(BaseModel):
    """A unit of work submitted to the manager. Extra fields are kept as-is."""

    model_config = ConfigDict(extra="allow", frozen=True)

    title: str
    description: str
    priority: TaskPriority | None = None

    @property
    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def render(self) -> str:
        """Format the task as the manager's first user turn."""
        lines = [
            f"Task: {self.title}",
            f"Description: {self.description}",
            f"Priority: {self.priority or 'medium'}",
        ]
        text = "\n\n".join(lines)
        if extras := self.extra_fields:
            text += "\n\n" + "\n".join(f"{key}: {value}" for key, value in extras.items())
        return text


class ExecutionResult(BaseModel):
    success: bool
    content: str = ""
    usage: Usage = Field(default_factory=Usage)
    error: str | None = None
    iterations: int = 0
    conversation_id: str | None = None


class Conversation(BaseModel):
    """A persisted turn sequence owned by one agent."""

    id: str = Field(default_factory=new_conversation_id)
    agent_kind: AgentKind
    agent_name: str
    turns: list[Turn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def instance_id(self) -> str | None:
        return self.metadata.get("instance_id")
