"""In-process conversation store (lost on restart)."""

from __future__ import annotations

from typing import Literal

from pydantic import PositiveInt

from officellm.core.errors import StoreError
from officellm.core.logging_core import log_debug
from officellm.core.messages import Conversation, Turn, utc_now

from .base import BaseMemoryConfig, QueryOptions, StoreStats, apply_query, compute_stats


class InMemoryConfig(BaseMemoryConfig):
    type: Literal["in-memory"] = "in-memory"
    max_conversations: PositiveInt = 1000


class InMemoryStore:
    """Dict-backed store; evicts the least recently updated conversation when full."""

    memory_type = "in-memory"

    def __init__(self, config: InMemoryConfig | None = None) -> None:
        self.config = config or InMemoryConfig()
        self._conversations: dict[str, Conversation] = {}

    async def store(self, conversation: Conversation) -> None:
        if conversation.id not in self._conversations and len(self._conversations) >= self.config.max_conversations:
            oldest = min(self._conversations.values(), key=lambda c: c.updated_at)
            del self._conversations[oldest.id]
            log_debug("STORE:in-memory", "Evicted conversation %s", oldest.id)
        self._conversations[conversation.id] = conversation.model_copy(deep=True)

    async def get(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def update(self, conversation_id: str, turns: list[Turn]) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise StoreError(f"Conversation with id {conversation_id} not found")
        conversation.turns = [turn.model_copy(deep=True) for turn in turns]
        conversation.updated_at = utc_now()

    async def delete(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)

    async def query(self, options: QueryOptions | None = None) -> list[Conversation]:
        return [c.model_copy(deep=True) for c in apply_query(self._conversations.values(), options)]

    async def stats(self) -> StoreStats:
        return compute_stats(self._conversations.values())

    async def clear(self) -> None:
        self._conversations.clear()

    async def close(self) -> None:
        return None
