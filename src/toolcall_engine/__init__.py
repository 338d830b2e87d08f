"""Tool-calling execution engine - a provider-agnostic core for LLM agents that call tools."""

from .engine_core import (
    EngineConfig,
    EngineSettings,
    ExecutionLoop,
    ExecutionOutcome,
    GeoPoint,
    ModelProvider,
    Completion,
    NameMapping,
    ToolBackend,
    ToolBackendGroup,
    ToolRegistry,
    ToolDefinition,
    ToolResult,
    ToolCall,
    UserMessage,
    ModelMessage,
    ToolMessage,
    get_logger,
    setup_logging,
)
from .engine_impl import GeminiProvider, OpenAIProvider
from .mcp_wrapper import MCPToolBackend
from .orchestrator import Orchestrator, Plan, RenderedResponse, OrchestratorResponse

__all__ = [
    "EngineConfig",
    "EngineSettings",
    "ExecutionLoop",
    "ExecutionOutcome",
    "GeoPoint",
    "ModelProvider",
    "Completion",
    "NameMapping",
    "ToolBackend",
    "ToolBackendGroup",
    "ToolRegistry",
    "ToolDefinition",
    "ToolResult",
    "ToolCall",
    "UserMessage",
    "ModelMessage",
    "ToolMessage",
    "get_logger",
    "setup_logging",
    "GeminiProvider",
    "OpenAIProvider",
    "MCPToolBackend",
    "Orchestrator",
    "Plan",
    "RenderedResponse",
    "OrchestratorResponse",
]
