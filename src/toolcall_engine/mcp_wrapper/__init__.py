"""MCP server integration."""

from .wrapper import MCPToolBackend

__all__ = ["MCPToolBackend"]
