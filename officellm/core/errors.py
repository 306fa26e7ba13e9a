"""Exception taxonomy for the delegation loop.

Only ``ProviderError`` and ``MissingToolImplementationError`` ever reach the
loop boundary as fatal failures. Tool runtime failures and unavailable
delegation targets are turned into tool turns and never raised.
"""

from __future__ import annotations


class OfficeError(Exception):
    """Base class for all officellm errors."""


class ConfigurationError(OfficeError):
    """Invalid or inconsistent configuration (unknown backend type, duplicate name, ...)."""


class ProviderError(OfficeError):
    """A model backend call failed (network, auth, malformed response)."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider} provider error: {message}")
        self.provider = provider


class MissingToolImplementationError(OfficeError):
    """A worker's provider requested a tool with no registered implementation."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            f'Tool "{tool_name}" has no implementation provided. '
            "Please add the tool implementation to the worker configuration."
        )
        self.tool_name = tool_name


class WorkerNotFoundError(OfficeError, LookupError):
    """Direct worker call for a name that is not registered."""

    def __init__(self, worker_name: str) -> None:
        super().__init__(f"Worker '{worker_name}' not found")
        self.worker_name = worker_name


class StoreError(OfficeError):
    """Conversation store read/write failure."""
