"""Public exports for the engine's core abstractions and utilities."""

from .logger import get_logger, setup_logging
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
from .config import EngineConfig, EngineSettings, EnrichmentPolicy, GeoPoint
from .messages import BaseMessage, UserMessage, ModelMessage, ToolMessage, prepare_history
from .base import ModelProvider, Completion
from .tools import (
    ToolCall,
    ToolDefinition,
    ToolResult,
    TextContent,
    GatheredItem,
    NameMapping,
    ToolBackend,
    ToolBackendGroup,
    ToolRegistry,
    SessionContext,
    ContextAccumulator,
)
from .tools.tool_loop import ExecutionLoop, ExecutionOutcome

__all__ = [
    "get_logger",
    "setup_logging",
    "EngineError",
    "ToolError",
    "ToolRegistrationError",
    "ToolNotFoundError",
    "ToolExecutionError",
    "ToolValidationError",
    "ProviderError",
    "ProviderRateLimitedError",
    "EngineConfig",
    "EngineSettings",
    "EnrichmentPolicy",
    "GeoPoint",
    "BaseMessage",
    "UserMessage",
    "ModelMessage",
    "ToolMessage",
    "prepare_history",
    "ModelProvider",
    "Completion",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "TextContent",
    "GatheredItem",
    "NameMapping",
    "ToolBackend",
    "ToolBackendGroup",
    "ToolRegistry",
    "SessionContext",
    "ContextAccumulator",
    "ExecutionLoop",
    "ExecutionOutcome",
]
