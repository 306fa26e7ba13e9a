"""Memory package — conversation stores (in-memory, Redis, PostgreSQL)."""

from .base import BaseMemoryConfig, ConversationStore, QueryOptions, StoreStats
from .factory import create_store, register_store, registered_store_types
from .in_memory import InMemoryConfig, InMemoryStore
from .postgres_store import PostgresConfig, PostgresStore
from .redis_store import RedisConfig, RedisStore

__all__ = [
    "BaseMemoryConfig",
    "ConversationStore",
    "QueryOptions",
    "StoreStats",
    "create_store",
    "register_store",
    "registered_store_types",
    "InMemoryConfig",
    "InMemoryStore",
    "PostgresConfig",
    "PostgresStore",
    "RedisConfig",
    "RedisStore",
]
