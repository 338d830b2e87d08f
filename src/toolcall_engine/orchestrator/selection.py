"""Matching planner-proposed tool names against the tools actually available."""

from typing import List, Optional, Sequence

from toolcall_engine.engine_core import ToolDefinition, get_logger
from toolcall_engine.engine_core.tools.naming import sanitize_tool_name, tool_core

logger = get_logger(__name__)

MAX_EDIT_DISTANCE = 3


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (char_a != char_b)))
        previous = current
    return previous[-1]


def _action(name: str) -> Optional[str]:
    if "list" in name:
        return "list"
    if "get" in name:
        return "get"
    return None


def _fuzzy_match(requested: str, candidate: str) -> bool:
    """
    Whether two tool names plausibly refer to the same tool.

    A ``list`` action never matches a ``get`` action. Otherwise names match on
    containment, on equal core segments, or within a small edit distance of
    their core segments.
    """
    wanted = requested.lower()
    other = candidate.lower()

    wanted_action, other_action = _action(wanted), _action(other)
    if wanted_action and other_action and wanted_action != other_action:
        return False
    if wanted in other or other in wanted:
        return True

    wanted_core, other_core = tool_core(wanted), tool_core(other)
    if wanted_core == other_core:
        return True
    return levenshtein(wanted_core, other_core) <= MAX_EDIT_DISTANCE


def select_tools(requested: Sequence[str], available: Sequence[ToolDefinition]) -> List[ToolDefinition]:
    """
    Resolve planner-proposed names to available tool definitions.

    Each name is matched exactly, then through its sanitized form, then
    fuzzily. Unresolved names are logged and dropped, duplicates removed.

    Args:
        requested: Names proposed by the planner.
        available: All tools the backends serve.

    Returns:
        The matched definitions, in the planner's order.
    """
    selected: List[ToolDefinition] = []
    seen = set()
    for name in requested:
        if not name:
            continue
        match = next((tool for tool in available if tool.name == name), None)
        if match is None:
            match = next((tool for tool in available if sanitize_tool_name(tool.name) == name), None)
        if match is None:
            match = next((tool for tool in available if _fuzzy_match(name, tool.name)), None)
            if match is not None:
                logger.info(f"Fuzzy match: '{name}' -> '{match.name}'")
        if match is None:
            logger.warning(f"Planner proposed unknown tool '{name}'.")
            continue
        if match.name not in seen:
            seen.add(match.name)
            selected.append(match)
    return selected
