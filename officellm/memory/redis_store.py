"""
Redis conversation store.

Layout (``key_prefix`` defaults to ``officellm:conv:``)::

    <prefix><conversation id>                  JSON document
    <prefix>index:all                          set of every conversation id
    <prefix>index:<agent kind>:<agent name>    set of ids owned by that agent
"""

from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import Field, PositiveInt

from officellm.core.errors import StoreError
from officellm.core.logging_core import log_info
from officellm.core.messages import Conversation, Turn, utc_now

from .base import BaseMemoryConfig, QueryOptions, StoreStats, apply_query, compute_stats


class RedisConfig(BaseMemoryConfig):
    type: Literal["redis"] = "redis"
    url: str = Field(default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    key_prefix: str = "officellm:conv:"
    ttl: PositiveInt | None = None


class RedisStore:
    """Stores each conversation as one JSON value plus per-agent index sets."""

    memory_type = "redis"

    def __init__(self, config: RedisConfig | None = None, client: Any = None) -> None:
        self.config = config or RedisConfig()
        self._redis = client

    def _get_redis(self) -> Any:
        """Create the client lazily so construction never touches the network."""
        if self._redis is None:
            from redis import asyncio as aioredis

            self._redis = aioredis.from_url(self.config.url, decode_responses=True)
            log_info("STORE:redis", "Redis client created for %s", self.config.url.split("@")[-1])
        return self._redis

    def _key(self, conversation_id: str) -> str:
        return f"{self.config.key_prefix}{conversation_id}"

    def _all_key(self) -> str:
        return f"{self.config.key_prefix}index:all"

    def _index_key(self, agent_kind: str, agent_name: str) -> str:
        return f"{self.config.key_prefix}index:{agent_kind}:{agent_name}"

    async def store(self, conversation: Conversation) -> None:
        async with self._get_redis().pipeline(transaction=True) as pipe:
            pipe.set(self._key(conversation.id), conversation.model_dump_json(), ex=self.config.ttl)
            pipe.sadd(self._all_key(), conversation.id)
            pipe.sadd(self._index_key(conversation.agent_kind.value, conversation.agent_name), conversation.id)
            await pipe.execute()

    async def get(self, conversation_id: str) -> Conversation | None:
        raw = await self._get_redis().get(self._key(conversation_id))
        if raw is None:
            return None
        return Conversation.model_validate_json(raw)

    async def update(self, conversation_id: str, turns: list[Turn]) -> None:
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise StoreError(f"Conversation with id {conversation_id} not found")
        conversation.turns = list(turns)
        conversation.updated_at = utc_now()
        await self.store(conversation)

    async def delete(self, conversation_id: str) -> None:
        conversation = await self.get(conversation_id)
        async with self._get_redis().pipeline(transaction=True) as pipe:
            if conversation is not None:
                pipe.srem(self._index_key(conversation.agent_kind.value, conversation.agent_name), conversation_id)
            pipe.srem(self._all_key(), conversation_id)
            pipe.delete(self._key(conversation_id))
            await pipe.execute()

    async def _candidate_ids(self, options: QueryOptions) -> set[str]:
        client = self._get_redis()
        if options.agent_kind is not None and options.agent_name is not None:
            return set(await client.smembers(self._index_key(options.agent_kind.value, options.agent_name)))
        if options.agent_kind is not None:
            ids: set[str] = set()
            pattern = self._index_key(options.agent_kind.value, "*")
            async for key in client.scan_iter(match=pattern):
                ids.update(await client.smembers(key))
            return ids
        return set(await client.smembers(self._all_key()))

    async def _load(self, ids: set[str]) -> list[Conversation]:
        conversations: list[Conversation] = []
        stale: list[str] = []
        for conversation_id in ids:
            conversation = await self.get(conversation_id)
            if conversation is None:
                stale.append(conversation_id)
            else:
                conversations.append(conversation)
        if stale:
            await self._prune(stale)
        return conversations

    async def _prune(self, stale: list[str]) -> None:
        """Drop ids whose documents expired by ttl from every index set."""
        client = self._get_redis()
        index_keys = [key async for key in client.scan_iter(match=f"{self.config.key_prefix}index:*")]
        async with client.pipeline(transaction=True) as pipe:
            for key in index_keys:
                pipe.srem(key, *stale)
            await pipe.execute()

    async def query(self, options: QueryOptions | None = None) -> list[Conversation]:
        options = options or QueryOptions()
        return apply_query(await self._load(await self._candidate_ids(options)), options)

    async def stats(self) -> StoreStats:
        return compute_stats(await self._load(set(await self._get_redis().smembers(self._all_key()))))

    async def clear(self) -> None:
        client = self._get_redis()
        keys = [key async for key in client.scan_iter(match=f"{self.config.key_prefix}*")]
        if keys:
            await client.delete(*keys)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
