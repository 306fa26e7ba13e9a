"""officellm — a manager agent delegating to tool-using worker agents."""

from .config import ManagerConfig, OfficeConfig, WorkerConfig
from .core import (
    BaseProvider,
    ExecutionResult,
    ProviderConfig,
    ProviderResponse,
    Task,
    ToolDefinition,
    ToolInvocationRequest,
    Turn,
    Usage,
)
from .core.engine import ManagerAgent, WorkerAgent
from .office import Office

__all__ = [
    "ManagerConfig",
    "OfficeConfig",
    "WorkerConfig",
    "BaseProvider",
    "ExecutionResult",
    "ProviderConfig",
    "ProviderResponse",
    "Task",
    "ToolDefinition",
    "ToolInvocationRequest",
    "Turn",
    "Usage",
    "ManagerAgent",
    "WorkerAgent",
    "Office",
]
