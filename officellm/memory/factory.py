"""Store factory — backend registry keyed by config ``type``."""

from __future__ import annotations

from typing import Any, Callable

from officellm.core.errors import ConfigurationError

from .base import BaseMemoryConfig, ConversationStore
from .in_memory import InMemoryConfig, InMemoryStore
from .postgres_store import PostgresConfig, PostgresStore
from .redis_store import RedisConfig, RedisStore

_STORES: dict[str, tuple[type[BaseMemoryConfig], Callable[[Any], ConversationStore]]] = {
    "in-memory": (InMemoryConfig, InMemoryStore),
    "redis": (RedisConfig, RedisStore),
    "postgres": (PostgresConfig, PostgresStore),
}


def register_store(
    memory_type: str,
    config_cls: type[BaseMemoryConfig],
    factory: Callable[[Any], ConversationStore],
) -> None:
    """Register a custom backend; ``factory`` receives a validated ``config_cls``."""
    _STORES[memory_type] = (config_cls, factory)


def registered_store_types() -> list[str]:
    return sorted(_STORES)


def create_store(config: BaseMemoryConfig | dict[str, Any]) -> ConversationStore:
    memory_type = config.get("type") if isinstance(config, dict) else config.type
    entry = _STORES.get(str(memory_type))
    if entry is None:
        raise ConfigurationError(
            f"Memory type '{memory_type}' is not registered. Available types: {', '.join(registered_store_types())}"
        )
    config_cls, factory = entry
    if isinstance(config, dict):
        config = config_cls.model_validate(config)
    elif not isinstance(config, config_cls):
        config = config_cls.model_validate(config.model_dump())
    return factory(config)
