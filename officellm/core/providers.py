"""
Language-model providers — pydantic objects built from a ``ProviderConfig``.

Architecture:
    BaseProvider        — capability contract: ``chat(turns, tools)``
    OpenAIProvider      — Chat Completions client (serves every OpenAI-compatible vendor)
    OpenRouterProvider, AnthropicProvider, GeminiProvider, LMStudioProvider
                        — the same client pointed at each vendor's compatible endpoint
    create_provider(config) — factory over the provider registry
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, ClassVar, Sequence
from uuid import uuid4

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, PrivateAttr

from .errors import ConfigurationError, ProviderError
from .logging_core import log_debug, log_info
from .messages import ProviderResponse, ToolInvocationRequest, Turn, Usage
from .tools import ToolDefinition


class ProviderConfig(BaseModel):
    """Provider binding for one agent. Unknown keys are passed to the request."""

    model_config = ConfigDict(extra="allow")

    type: str = "openai"
    model: str
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None


def _first_non_empty(*values: str | None) -> str | None:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None


def _provider_settings(provider_type: str) -> tuple[str | None, str | None]:
    """Read ``<TYPE>_BASE_URL`` / ``<TYPE>_API_KEY`` from the environment."""
    env = provider_type.strip().upper().replace("-", "_")
    base_url = _first_non_empty(os.getenv(f"{env}_BASE_URL"), os.getenv(f"{env}_PROVIDER_URL"))
    api_key = _first_non_empty(os.getenv(f"{env}_API_KEY"))
    return base_url, api_key


class BaseProvider(BaseModel):
    """Exchange a turn sequence plus tool definitions for one response."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="allow")

    provider_type: ClassVar[str] = "base"

    model: str
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None

    @property
    def identity(self) -> str:
        return f"{self.provider_type}/{self.model}"

    async def chat(self, turns: Sequence[Turn], tools: Sequence[ToolDefinition] | None = None) -> ProviderResponse:
        raise NotImplementedError(f"{self.__class__.__name__} must implement chat().")

    async def is_available(self) -> bool:
        return bool(self.api_key)

    def supported_models(self) -> list[str]:
        return []


class OpenAIProvider(BaseProvider):
    """OpenAI Chat Completions API with function calling."""

    provider_type: ClassVar[str] = "openai"
    default_base_url: ClassVar[str | None] = None
    default_api_key: ClassVar[str | None] = None
    models: ClassVar[list[str]] = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    ]

    _client: OpenAI | None = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        env_base_url, env_api_key = _provider_settings(self.provider_type)
        self.base_url = _first_non_empty(self.base_url, env_base_url, self.default_base_url)
        self.api_key = _first_non_empty(self.api_key, env_api_key, self.default_api_key)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            if self.api_key:
                kwargs["api_key"] = self.api_key
            self._client = OpenAI(**kwargs)
            log_info("PROVIDER", "%s client initialized (base_url=%s)", self.provider_type, self.base_url or "default")
        return self._client

    def supported_models(self) -> list[str]:
        return list(self.models)

    # ── wire conversion ──────────────────────────────────────────────────

    @staticmethod
    def to_wire_messages(turns: Sequence[Turn]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        for turn in turns:
            if turn.role == "tool":
                messages.append({"role": "tool", "tool_call_id": turn.tool_call_id, "content": turn.content})
            elif turn.role == "assistant" and turn.tool_calls:
                messages.append(
                    {
                        "role": "assistant",
                        "content": turn.content or None,
                        "tool_calls": [
                            {
                                "id": call.id,
                                "type": "function",
                                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                            }
                            for call in turn.tool_calls
                        ],
                    }
                )
            else:
                messages.append({"role": turn.role, "content": turn.content})
        return messages

    @staticmethod
    def to_wire_tools(tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.json_schema(),
                },
            }
            for tool in tools
        ]

    @classmethod
    def parse_response(cls, response: Any) -> ProviderResponse:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderError(cls.provider_type, "response contained no choices")
        choice = choices[0]
        message = choice.message

        calls: list[ToolInvocationRequest] = []
        for raw_call in getattr(message, "tool_calls", None) or []:
            raw_args = raw_call.function.arguments or "{}"
            try:
                arguments = json.loads(raw_args)
            except json.JSONDecodeError as e:
                raise ProviderError(
                    cls.provider_type, f"invalid arguments for tool '{raw_call.function.name}': {e}"
                ) from e
            if not isinstance(arguments, dict):
                raise ProviderError(cls.provider_type, f"arguments for tool '{raw_call.function.name}' are not an object")
            calls.append(
                ToolInvocationRequest(
                    id=raw_call.id or f"call_{uuid4().hex[:12]}",
                    name=raw_call.function.name,
                    arguments=arguments,
                )
            )

        raw_usage = getattr(response, "usage", None)
        usage = Usage(
            prompt_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(raw_usage, "total_tokens", 0) or 0,
        )
        return ProviderResponse(
            content=message.content or "",
            tool_calls=calls,
            usage=usage,
            finish_reason=choice.finish_reason or "stop",
        )

    # ── chat ─────────────────────────────────────────────────────────────

    def _build_request(self, turns: Sequence[Turn], tools: Sequence[ToolDefinition] | None) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": self.to_wire_messages(turns),
            "temperature": self.temperature,
        }
        if self.max_tokens:
            request["max_tokens"] = self.max_tokens
        if tools:
            request["tools"] = self.to_wire_tools(tools)
        request.update(self.model_extra or {})
        return request

    async def chat(self, turns: Sequence[Turn], tools: Sequence[ToolDefinition] | None = None) -> ProviderResponse:
        request = self._build_request(turns, tools)
        log_debug("PROVIDER", "[%s] invoking model=%s turns=%d", self.provider_type, self.model, len(turns))
        client = self._get_client()
        try:
            response = await asyncio.to_thread(lambda: client.chat.completions.create(**request))
        except Exception as e:
            raise ProviderError(self.provider_type, str(e)) from e
        return self.parse_response(response)


class OpenRouterProvider(OpenAIProvider):
    provider_type: ClassVar[str] = "openrouter"
    default_base_url: ClassVar[str | None] = "https://openrouter.ai/api/v1"
    models: ClassVar[list[str]] = [
        "openai/gpt-4o",
        "anthropic/claude-3.5-sonnet",
        "google/gemini-2.5-flash",
        "meta-llama/llama-3.1-70b-instruct",
    ]


class AnthropicProvider(OpenAIProvider):
    provider_type: ClassVar[str] = "anthropic"
    default_base_url: ClassVar[str | None] = "https://api.anthropic.com/v1/"
    models: ClassVar[list[str]] = [
        "claude-3-5-sonnet-20240620",
        "claude-3-opus-20240229",
        "claude-3-haiku-20240307",
    ]


class GeminiProvider(OpenAIProvider):
    provider_type: ClassVar[str] = "gemini"
    default_base_url: ClassVar[str | None] = "https://generativelanguage.googleapis.com/v1beta/openai/"
    models: ClassVar[list[str]] = ["gemini-2.5-pro", "gemini-2.5-flash"]


class LMStudioProvider(OpenAIProvider):
    provider_type: ClassVar[str] = "lmstudio"
    default_base_url: ClassVar[str | None] = "http://127.0.0.1:1234/v1"
    default_api_key: ClassVar[str | None] = "lm-studio"
    models: ClassVar[list[str]] = []

    async def is_available(self) -> bool:
        return True


_PROVIDERS: dict[str, type[BaseProvider]] = {
    cls.provider_type: cls
    for cls in (OpenAIProvider, OpenRouterProvider, AnthropicProvider, GeminiProvider, LMStudioProvider)
}


def register_provider(provider_type: str, provider_cls: type[BaseProvider]) -> None:
    """Register (or replace) a provider variant under ``provider_type``."""
    _PROVIDERS[provider_type.strip().lower()] = provider_cls


def registered_provider_types() -> list[str]:
    return sorted(_PROVIDERS)


def create_provider(config: ProviderConfig | BaseProvider | dict[str, Any]) -> BaseProvider:
    """Build a provider from its config; provider instances pass through."""
    if isinstance(config, BaseProvider):
        return config
    if isinstance(config, dict):
        config = ProviderConfig.model_validate(config)

    provider_cls = _PROVIDERS.get(config.type.strip().lower())
    if provider_cls is None:
        raise ConfigurationError(
            f"Provider type '{config.type}' is not registered. Available types: {', '.join(registered_provider_types())}"
        )
    return provider_cls(**config.model_dump(exclude={"type"}))
