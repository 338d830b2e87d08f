"""Request orchestration around the execution loop."""

from .models import Plan, RenderedResponse, OrchestratorResponse, Planner, Designer
from .orchestrator import Orchestrator
from .sanitizer import sanitize_response
from .selection import select_tools, levenshtein

__all__ = [
    "Plan",
    "RenderedResponse",
    "OrchestratorResponse",
    "Planner",
    "Designer",
    "Orchestrator",
    "sanitize_response",
    "select_tools",
    "levenshtein",
]
