"""Protocol for tool backends and a router over several of them."""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

from ..exceptions import ToolNotFoundError
from ..logger import get_logger
from .models import ToolDefinition, ToolResult

logger = get_logger(__name__)


@runtime_checkable
class ToolBackend(Protocol):
    """
    Anything that can list and execute tools.
    """

    async def list_tools(self) -> List[ToolDefinition]:
        """Returns the definitions of all tools the backend serves."""
        ...

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        """Executes a tool by its original name. May raise."""
        ...


class ToolBackendGroup:
    """Presents several backends as one, routing each call to the backend that declared the tool."""

    def __init__(self, backends: Sequence[ToolBackend]) -> None:
        self._backends = list(backends)
        self._owners: Dict[str, ToolBackend] = {}

    async def list_tools(self) -> List[ToolDefinition]:
        definitions: List[ToolDefinition] = []
        self._owners = {}
        for backend in self._backends:
            for definition in await backend.list_tools():
                if definition.name in self._owners:
                    logger.warning(f"Tool '{definition.name}' is declared by several backends. Keeping the first.")
                    continue
                self._owners[definition.name] = backend
                definitions.append(definition)
        return definitions

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        if not self._owners:
            await self.list_tools()
        backend = self._owners.get(name)
        if backend is None:
            raise ToolNotFoundError(f"Tool '{name}' not found in any backend.")
        return await backend.execute(name, args)
