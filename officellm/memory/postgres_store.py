"""
PostgreSQL conversation store — async via asyncpg.

Usage::

    store = PostgresStore(PostgresConfig(dsn="postgresql://localhost:5432/officellm"))
    await store.store(conversation)     # pool and migrations on first use
    await store.close()                 # on shutdown
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

import asyncpg  # type: ignore[import-untyped]
from pydantic import Field, PositiveInt

from officellm.core.errors import StoreError
from officellm.core.logging_core import log_info, log_warning
from officellm.core.messages import AgentKind, Conversation, Turn, utc_now

from .base import BaseMemoryConfig, QueryOptions, StoreStats

_TABLE = "officellm_conversations"
_COLUMNS = "id, agent_kind, agent_name, turns, metadata, created_at, updated_at"


class PostgresConfig(BaseMemoryConfig):
    type: Literal["postgres"] = "postgres"
    dsn: str = Field(default_factory=lambda: os.getenv("DATABASE_URL", "postgresql://localhost:5432/officellm"))
    min_size: PositiveInt = 1
    max_size: PositiveInt = 10
    auto_migrate: bool = True


def build_query(options: QueryOptions) -> tuple[str, list[Any]]:
    """Translate query options into SQL plus positional arguments."""
    clauses: list[str] = []
    args: list[Any] = []

    def _bind(clause: str, value: Any) -> None:
        args.append(value)
        clauses.append(clause.format(f"${len(args)}"))

    if options.agent_kind is not None:
        _bind("agent_kind = {}", options.agent_kind.value)
    if options.agent_name is not None:
        _bind("agent_name = {}", options.agent_name)
    if options.instance_id is not None:
        _bind("instance_id = {}", options.instance_id)
    if options.start_date is not None:
        _bind("created_at >= {}", options.start_date)
    if options.end_date is not None:
        _bind("created_at <= {}", options.end_date)

    sql = f"SELECT {_COLUMNS} FROM {_TABLE}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY updated_at DESC"
    if options.limit is not None:
        args.append(options.limit)
        sql += f" LIMIT ${len(args)}"
    if options.offset:
        args.append(options.offset)
        sql += f" OFFSET ${len(args)}"
    return sql, args


def _row_to_conversation(row: Any) -> Conversation:
    turns = row["turns"]
    metadata = row["metadata"]
    return Conversation(
        id=row["id"],
        agent_kind=AgentKind(row["agent_kind"]),
        agent_name=row["agent_name"],
        turns=json.loads(turns) if isinstance(turns, str) else turns,
        metadata=json.loads(metadata) if isinstance(metadata, str) else metadata,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresStore:
    memory_type = "postgres"

    def __init__(self, config: PostgresConfig | None = None) -> None:
        self.config = config or PostgresConfig()
        self._pool: asyncpg.Pool | None = None

    async def get_pool(self) -> asyncpg.Pool:
        """Return the connection pool, creating it (and migrating) on first call."""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.config.dsn, min_size=self.config.min_size, max_size=self.config.max_size
            )
            dsn = self.config.dsn
            log_info("STORE:postgres", "Database pool created: %s", dsn.split("@")[-1] if "@" in dsn else dsn)
            if self.config.auto_migrate:
                await self.run_migrations()
        return self._pool

    async def run_migrations(self) -> None:
        """Run SQL migration files from migrations/ in order."""
        pool = self._pool or await self.get_pool()
        migrations_dir = Path(__file__).parent / "migrations"
        if not migrations_dir.exists():
            log_warning("STORE:postgres", "No migrations directory found at %s", migrations_dir)
            return
        async with pool.acquire() as conn:
            for sql_file in sorted(migrations_dir.glob("*.sql")):
                await conn.execute(sql_file.read_text(encoding="utf-8"))
                log_info("STORE:postgres", "Migration applied: %s", sql_file.name)

    async def store(self, conversation: Conversation) -> None:
        pool = await self.get_pool()
        turns = json.dumps([turn.model_dump(mode="json") for turn in conversation.turns])
        async with pool.acquire() as conn:
            await conn.execute(
                f"""
                INSERT INTO {_TABLE} (id, agent_kind, agent_name, instance_id, turns, metadata, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7, $8)
                ON CONFLICT (id) DO UPDATE SET
                    turns = EXCLUDED.turns,
                    metadata = EXCLUDED.metadata,
                    instance_id = EXCLUDED.instance_id,
                    updated_at = EXCLUDED.updated_at
                """,
                conversation.id,
                conversation.agent_kind.value,
                conversation.agent_name,
                conversation.instance_id,
                turns,
                json.dumps(conversation.metadata, default=str),
                conversation.created_at,
                conversation.updated_at,
            )

    async def get(self, conversation_id: str) -> Conversation | None:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM {_TABLE} WHERE id = $1", conversation_id)
        return _row_to_conversation(row) if row else None

    async def update(self, conversation_id: str, turns: list[Turn]) -> None:
        pool = await self.get_pool()
        payload = json.dumps([turn.model_dump(mode="json") for turn in turns])
        async with pool.acquire() as conn:
            status = await conn.execute(
                f"UPDATE {_TABLE} SET turns = $2::jsonb, updated_at = $3 WHERE id = $1",
                conversation_id,
                payload,
                utc_now(),
            )
        if status.endswith(" 0"):
            raise StoreError(f"Conversation with id {conversation_id} not found")

    async def delete(self, conversation_id: str) -> None:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            await conn.execute(f"DELETE FROM {_TABLE} WHERE id = $1", conversation_id)

    async def query(self, options: QueryOptions | None = None) -> list[Conversation]:
        sql, args = build_query(options or QueryOptions())
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [_row_to_conversation(row) for row in rows]

    async def stats(self) -> StoreStats:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT count(*) AS count,
                       coalesce(sum(jsonb_array_length(turns)), 0) AS total_turns,
                       min(created_at) AS oldest,
                       max(created_at) AS newest
                FROM {_TABLE}
                """
            )
        return StoreStats(
            count=row["count"], total_turns=row["total_turns"], oldest=row["oldest"], newest=row["newest"]
        )

    async def clear(self) -> None:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            await conn.execute(f"DELETE FROM {_TABLE}")

    async def close(self) -> None:
        """Gracefully close the pool (call at shutdown)."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            log_info("STORE:postgres", "Database pool closed")
