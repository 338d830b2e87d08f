"""Serve the tools of an MCP server to the engine through an async stdio client session."""

from contextlib import AsyncExitStack
from types import TracebackType
from typing import Any, Dict, List, Optional, Type, cast

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.types import EmbeddedResource, ImageContent, TextContent as MCPTextContent

from toolcall_engine.engine_core import ToolDefinition, ToolResult, get_logger
from toolcall_engine.engine_core.tools.models import TextContent
from toolcall_engine.engine_core.tools.naming import NAMESPACE_SEPARATOR

logger = get_logger(__name__)

__all__ = ["MCPToolBackend"]


class MCPToolBackend:
    """``ToolBackend`` for a Model Context Protocol server started over stdio."""

    def __init__(
        self,
        command: str,
        args: list[str],
        env: Optional[dict[str, str]] = None,
        namespace: Optional[str] = None,
    ):
        """Initializes the backend with parameters for the MCP server process.

        Args:
            command: The command to run the server.
            args: List of arguments for the command.
            env: Optional dictionary of environment variables.
            namespace: Optional prefix; tools are then exposed as ``<namespace>__<tool>``.
        """
        self._server_params = StdioServerParameters(command=command, args=args, env=env)
        self._namespace = namespace
        self._session: Optional[ClientSession] = None
        self._exit_stack = AsyncExitStack()
        self._remote_names: Dict[str, str] = {}

    async def __aenter__(self) -> "MCPToolBackend":
        """Opens the transport and initializes the session.

        Returns:
            The connected backend.
        """
        logger.debug("Initializing MCP client session...")
        read, write = await self._exit_stack.enter_async_context(stdio_client(self._server_params))
        self._session = await self._exit_stack.enter_async_context(ClientSession(read, write))
        await self._session.initialize()
        logger.info("MCP client session initialized successfully.")
        return self

    async def __aexit__(
        self, exc_type: Optional[Type[BaseException]], exc_val: Optional[BaseException], exc_tb: Optional[TracebackType]
    ) -> None:
        """Cleanly closes all connections."""
        logger.debug("Closing MCP client session...")
        await self._exit_stack.aclose()
        self._session = None
        logger.info("MCP client session closed.")

    def _require_session(self) -> ClientSession:
        if not self._session:
            raise RuntimeError("MCP Client is not connected. Use 'async with'.")
        return self._session

    def _exposed_name(self, remote_name: str) -> str:
        if self._namespace:
            return f"{self._namespace}{NAMESPACE_SEPARATOR}{remote_name}"
        return remote_name

    async def list_tools(self) -> List[ToolDefinition]:
        """Fetch the server's tools as engine definitions.

        Returns:
            One definition per MCP tool, names prefixed with the namespace when set.

        Raises:
            RuntimeError: If the MCP client is not connected.
        """
        session = self._require_session()
        result = await session.list_tools()
        logger.info("Found %d tools from MCP server.", len(result.tools))

        definitions = []
        self._remote_names = {}
        for tool in result.tools:
            name = self._exposed_name(tool.name)
            self._remote_names[name] = tool.name
            definitions.append(
                ToolDefinition(
                    name=name,
                    description=tool.description or f"Tool {tool.name} provided by MCP server.",
                    parameters=tool.inputSchema or {"type": "object", "properties": {}},
                )
            )
        return definitions

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        """Delegate a call to the MCP server.

        Args:
            name: Exposed tool name.
            args: Arguments for the call.

        Returns:
            The server's content blocks flattened into text blocks. Unknown tools
            produce a "not found" error result.

        Raises:
            RuntimeError: If the MCP client is not connected.
        """
        session = self._require_session()
        if not self._remote_names:
            await self.list_tools()

        remote_name = self._remote_names.get(name)
        if remote_name is None:
            return ToolResult.from_text(f"Tool '{name}' not found on MCP server.", is_error=True)

        logger.info("Delegating tool '%s' to MCP Server...", remote_name)
        logger.debug("Tool arguments: %s", args)
        mcp_result = await session.call_tool(remote_name, arguments=args)

        if not mcp_result.content:
            return ToolResult.from_text("Success", is_error=bool(mcp_result.isError))

        blocks = []
        for c in mcp_result.content:
            if c.type == "text":
                blocks.append(TextContent(text=cast(MCPTextContent, c).text))
            elif c.type == "image":
                blocks.append(TextContent(text=f"[Image: {cast(ImageContent, c).mimeType}]"))
            elif c.type == "resource":
                blocks.append(TextContent(text=f"[Resource: {cast(EmbeddedResource, c).resource.uri}]"))
            else:
                blocks.append(TextContent(text=f"[Unknown content type: {c.type}]"))

        return ToolResult(is_error=bool(mcp_result.isError), content=blocks)
