"""Data models for tool call requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model, either natively or through recovery.

    Attributes:
        name: Tool name as the model sees it (sanitized).
        args: Arguments for the call.
    """

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
