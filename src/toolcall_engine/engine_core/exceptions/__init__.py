"""Export the exception hierarchy shared by tools, backends and providers."""

from .exceptions import (
    EngineError,
    ToolError,
    ToolRegistrationError,
    ToolNotFoundError,
    ToolExecutionError,
    ToolValidationError,
    ProviderError,
    ProviderRateLimitedError,
)

__all__ = [
    "EngineError",
    "ToolError",
    "ToolRegistrationError",
    "ToolNotFoundError",
    "ToolExecutionError",
    "ToolValidationError",
    "ProviderError",
    "ProviderRateLimitedError",
]
