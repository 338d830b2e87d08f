"""
Custom exception classes for the tool-calling engine.

Tool errors are recoverable: the execution loop turns them into conversation
content so the model can adapt. Provider errors end the loop with a degraded,
user-safe answer.
"""


class EngineError(Exception):
    """Base exception for all engine errors."""

    pass


class ToolError(EngineError):
    """Base exception for tool-related errors."""

    pass


class ToolRegistrationError(ToolError):
    """Raised when there is an error registering a tool."""

    pass


class ToolNotFoundError(ToolError):
    """Raised when a requested tool is not known to any backend."""

    pass


class ToolExecutionError(ToolError):
    """Raised when a tool fails during execution."""

    pass


class ToolValidationError(ToolError):
    """Raised when tool parameters or definition are invalid."""

    pass


class ProviderError(EngineError):
    """Raised when the model provider fails to produce a completion."""

    pass


class ProviderRateLimitedError(ProviderError):
    """Raised when the model provider signals rate limiting or quota exhaustion."""

    pass
