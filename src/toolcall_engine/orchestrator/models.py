"""Interfaces and data exchanged with the Planner and the Designer."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from toolcall_engine.engine_core import BaseMessage, GatheredItem, GeoPoint, ToolDefinition
from toolcall_engine.engine_core.tools.tool_loop import ExecutionOutcome


class Plan(BaseModel):
    """Planner output.

    Attributes:
        tools: Names of the tools proposed for the request.
        thought: Rationale, folded into the user turn for the execution loop.
        steps: Opaque plan steps handed to the Designer.
        used_model: Model the planner settled on, reused by the execution loop.
    """

    tools: List[str] = Field(default_factory=list)
    thought: str = ""
    steps: List[Any] = Field(default_factory=list)
    used_model: Optional[str] = None


class RenderedResponse(BaseModel):
    """Designer output: the answer text plus any UI widgets."""

    text: str
    widgets: List[Any] = Field(default_factory=list)


class OrchestratorResponse(BaseModel):
    """Everything a caller gets back for one request."""

    text: str
    widgets: List[Any] = Field(default_factory=list)
    gathered_data: List[GatheredItem] = Field(default_factory=list)
    used_model: Optional[str] = None
    plan: Plan = Field(default_factory=Plan)
    degraded: bool = False


class Planner(Protocol):
    """Chooses the tools relevant to a request."""

    async def plan(
        self,
        user_message: str,
        tools: Sequence[ToolDefinition],
        history: Sequence[BaseMessage],
        location: Optional[GeoPoint],
        model: Optional[str],
    ) -> Plan:
        """Propose a tool subset and a rationale for the request."""
        ...


class Designer(Protocol):
    """Renders an execution outcome for the user interface."""

    async def design(self, outcome: ExecutionOutcome, steps: Sequence[Any]) -> RenderedResponse:
        """Turn the loop's answer and gathered data into a rendered response."""
        ...
