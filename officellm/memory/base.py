"""
Conversation store capability.

Every backend implements ``ConversationStore``: whole-conversation upsert,
fetch, turn replacement, delete, filtered query (most recently updated
first), stats, clear and close. Backends never write partial conversations.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, NonNegativeInt, field_validator

from officellm.core.messages import AgentKind, Conversation, Turn


class BaseMemoryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str


class QueryOptions(BaseModel):
    agent_kind: AgentKind | None = None
    agent_name: str | None = None
    instance_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: NonNegativeInt | None = None
    offset: NonNegativeInt = 0

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class StoreStats(BaseModel):
    count: int = 0
    total_turns: int = 0
    oldest: datetime | None = None
    newest: datetime | None = None


@runtime_checkable
class ConversationStore(Protocol):
    memory_type: str

    async def store(self, conversation: Conversation) -> None: ...

    async def get(self, conversation_id: str) -> Conversation | None: ...

    async def update(self, conversation_id: str, turns: list[Turn]) -> None: ...

    async def delete(self, conversation_id: str) -> None: ...

    async def query(self, options: QueryOptions | None = None) -> list[Conversation]: ...

    async def stats(self) -> StoreStats: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


def matches(conversation: Conversation, options: QueryOptions) -> bool:
    if options.agent_kind is not None and conversation.agent_kind != options.agent_kind:
        return False
    if options.agent_name is not None and conversation.agent_name != options.agent_name:
        return False
    if options.instance_id is not None and conversation.instance_id != options.instance_id:
        return False
    if options.start_date is not None and conversation.created_at < options.start_date:
        return False
    if options.end_date is not None and conversation.created_at > options.end_date:
        return False
    return True


def apply_query(conversations: Iterable[Conversation], options: QueryOptions | None) -> list[Conversation]:
    """Filter, order most-recently-updated first, then paginate."""
    options = options or QueryOptions()
    results = sorted(
        (c for c in conversations if matches(c, options)),
        key=lambda c: c.updated_at,
        reverse=True,
    )
    end = None if options.limit is None else options.offset + options.limit
    return results[options.offset:end]


def compute_stats(conversations: Iterable[Conversation]) -> StoreStats:
    items = list(conversations)
    if not items:
        return StoreStats()
    created = [c.created_at for c in items]
    return StoreStats(
        count=len(items),
        total_turns=sum(len(c.turns) for c in items),
        oldest=min(created),
        newest=max(created),
    )

