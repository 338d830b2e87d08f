"""Provider-agnostic message models for the running conversation."""

from abc import ABC
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..tools.call_protocol import ToolCall

Role = Literal["user", "model", "tool"]


class BaseMessage(ABC, BaseModel):
    """Base model for messages exchanged with a model.

    Attributes:
        role: Role associated with the message.
        content: Text payload of the message.
    """

    role: Role
    content: str = ""


class UserMessage(BaseMessage):
    """Message authored by an end user."""

    role: Role = "user"


class ModelMessage(BaseMessage):
    """Message authored by the model, optionally carrying the tool calls it requested."""

    role: Role = "model"
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolMessage(BaseMessage):
    """Compressed result of one tool invocation, as seen by the model.

    Attributes:
        name: Sanitized tool name the model used for the call.
        is_error: Whether the tool reported a failure.
    """

    role: Role = "tool"
    name: str
    is_error: bool = False
