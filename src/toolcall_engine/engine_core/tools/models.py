"""Data models describing tools and the results they produce."""

import json
from typing import Any, Callable, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """
    Declaration of a tool as exposed by a backend.

    Attributes:
        name: The unique name of the tool within its backend.
        description: A brief description of what the tool does.
        parameters: JSON schema describing the tool's input object.
    """

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    @property
    def properties(self) -> Dict[str, Any]:
        """Declared argument properties, empty when the schema has none."""
        props = self.parameters.get("properties") if isinstance(self.parameters, dict) else None
        return props if isinstance(props, dict) else {}

    @property
    def required(self) -> List[str]:
        """Names of required arguments."""
        req = self.parameters.get("required") if isinstance(self.parameters, dict) else None
        return [r for r in req if isinstance(r, str)] if isinstance(req, list) else []


class LocalToolDefinition(ToolDefinition):
    """
    Tool definition backed by an in-process Python callable.

    Attributes:
        func: The callable implementing the tool.
        args_model: Optional Pydantic model used for validating and coercing arguments.
    """

    func: Callable
    args_model: Optional[Type[BaseModel]] = None


class TextContent(BaseModel):
    """A text block of a tool result."""

    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """Outcome of a tool execution as returned by a backend.

    Attributes:
        is_error: Whether the backend reported a failure.
        content: Ordered text blocks making up the result.
    """

    is_error: bool = False
    content: List[TextContent] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, is_error: bool = False) -> "ToolResult":
        """Build a single-block result."""
        return cls(is_error=is_error, content=[TextContent(text=text)])

    @classmethod
    def from_payload(cls, payload: Any, is_error: bool = False) -> "ToolResult":
        """Build a single-block result, JSON-encoding anything that is not already a string."""
        if isinstance(payload, str):
            return cls.from_text(payload, is_error=is_error)
        return cls.from_text(json.dumps(payload, ensure_ascii=False, default=str), is_error=is_error)

    @property
    def text(self) -> str:
        """All text blocks joined by newlines."""
        return "\n".join(item.text for item in self.content)


class GatheredItem(BaseModel):
    """UI-facing record of one tool execution.

    Attributes:
        tool: Original (unsanitized) tool name.
        args: Effective arguments the tool was called with.
        result: Result compressed with the UI budget.
    """

    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: ToolResult
