from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from toolcall_engine.engine_core import (
    BaseMessage,
    Completion,
    ModelProvider,
    ToolDefinition,
    ToolResult,
)

CompletionOrError = Union[Completion, Exception]


class ScriptedProvider(ModelProvider):
    """Provider returning pre-scripted completions, recording every request."""

    def __init__(self, script: Sequence[CompletionOrError]) -> None:
        super().__init__(max_retries=0, base_retry_delay=0.0)
        self.script: List[CompletionOrError] = list(script)
        self.requests: List[Dict[str, Any]] = []

    async def _generate_impl(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[ToolDefinition],
        system_instruction: str,
        model: Optional[str],
    ) -> Completion:
        self.requests.append(
            {
                "messages": list(messages),
                "tools": list(tools),
                "system_instruction": system_instruction,
                "model": model,
            }
        )
        item = self.script.pop(0) if self.script else Completion(text="done")
        if isinstance(item, Exception):
            raise item
        return item


class RecordingBackend:
    """In-memory backend: handlers receive the arguments and return a payload or a ToolResult."""

    def __init__(self, definitions: Sequence[ToolDefinition], handlers: Dict[str, Callable[..., Any]]) -> None:
        self.definitions = list(definitions)
        self.handlers = handlers
        self.calls: List[tuple] = []

    async def list_tools(self) -> List[ToolDefinition]:
        return list(self.definitions)

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        self.calls.append((name, dict(args)))
        output = self.handlers[name](**args)
        if isinstance(output, ToolResult):
            return output
        return ToolResult.from_payload(output)


@pytest.fixture
def search_tool() -> ToolDefinition:
    return ToolDefinition(
        name="api_7f3a__search_items",
        description="Search catalog items.",
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Free-text search."},
                "city": {"type": "string"},
                "limit": {"type": "integer"},
                "page": {"type": "integer"},
                "lat": {"type": "number"},
                "lon": {"type": "number"},
                "isRecommended": {"type": "boolean"},
            },
            "required": ["query"],
        },
    )


@pytest.fixture
def detail_tool() -> ToolDefinition:
    return ToolDefinition(
        name="api_7f3a__get_item",
        description="Fetch one item by id.",
        parameters={
            "type": "object",
            "properties": {"item_id": {"type": "integer"}},
            "required": ["item_id"],
        },
    )
