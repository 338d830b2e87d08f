"""Tool-level building blocks: naming, schemas, recovery, enrichment, compression and backends."""

from .call_protocol import ToolCall
from .models import ToolDefinition, LocalToolDefinition, TextContent, ToolResult, GatheredItem
from .naming import NameMapping, sanitize_tool_name, adapt_tools, find_tool, matches_tool
from .schema import normalize, ArgumentValidator, ValidationReport
from .context import ContextAccumulator
from .enrichment import ArgumentEnricher, SessionContext
from .recovery import CallRecoveryParser, RecoveryResult, RecoveryStrategy
from .compression import ResultCompressor
from .backend import ToolBackend, ToolBackendGroup
from .registry import ToolRegistry

__all__ = [
    "ToolCall",
    "ToolDefinition",
    "LocalToolDefinition",
    "TextContent",
    "ToolResult",
    "GatheredItem",
    "NameMapping",
    "sanitize_tool_name",
    "adapt_tools",
    "find_tool",
    "matches_tool",
    "normalize",
    "ArgumentValidator",
    "ValidationReport",
    "ContextAccumulator",
    "ArgumentEnricher",
    "SessionContext",
    "CallRecoveryParser",
    "RecoveryResult",
    "RecoveryStrategy",
    "ResultCompressor",
    "ToolBackend",
    "ToolBackendGroup",
    "ToolRegistry",
]
