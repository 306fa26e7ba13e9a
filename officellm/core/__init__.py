"""Core package — data model, providers, tools, context window and the agent engine."""

from .context import build_context_window
from .errors import (
    ConfigurationError,
    MissingToolImplementationError,
    OfficeError,
    ProviderError,
    StoreError,
    WorkerNotFoundError,
)
from .messages import (
    AgentKind,
    Conversation,
    ExecutionResult,
    ProviderResponse,
    Task,
    ToolInvocationRequest,
    Turn,
    Usage,
)
from .providers import (
    AnthropicProvider,
    BaseProvider,
    GeminiProvider,
    LMStudioProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderConfig,
    create_provider,
    register_provider,
    registered_provider_types,
)
from .tools import DelegationRequest, ToolDefinition, ToolDispatchTable, initialize_mcp_tools

__all__ = [
    "build_context_window",
    "ConfigurationError",
    "MissingToolImplementationError",
    "OfficeError",
    "ProviderError",
    "StoreError",
    "WorkerNotFoundError",
    "AgentKind",
    "Conversation",
    "ExecutionResult",
    "ProviderResponse",
    "Task",
    "ToolInvocationRequest",
    "Turn",
    "Usage",
    "AnthropicProvider",
    "BaseProvider",
    "GeminiProvider",
    "LMStudioProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "ProviderConfig",
    "create_provider",
    "register_provider",
    "registered_provider_types",
    "DelegationRequest",
    "ToolDefinition",
    "ToolDispatchTable",
    "initialize_mcp_tools",
]
