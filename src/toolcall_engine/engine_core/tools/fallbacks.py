"""Detection of empty tool results and the broadened retries that follow them."""

from typing import Any, Dict, Optional, Sequence

from ..config import CoordinatePolicy, EmptyResultRetry
from ..logger import get_logger
from .context import parse_json_payload
from .models import ToolResult
from .naming import matches_tool

logger = get_logger(__name__)

NOT_FOUND_MARKERS = ("not found", "does not exist")


def is_suspiciously_empty(result: ToolResult, min_chars: int = 50) -> bool:
    """
    Whether a successful result looks like "nothing matched".

    Args:
        result: The raw tool result.
        min_chars: Payloads shorter than this are considered empty.

    Returns:
        True for short or structurally empty payloads. Error results are never empty.
    """
    if result.is_error:
        return False
    text = result.text.strip()
    if not text:
        return True

    payload = parse_json_payload(text)
    if payload == [] or payload == {}:
        return True
    if isinstance(payload, dict) and any(payload.get(key) == [] for key in ("items", "data")):
        return True
    if '"length":0' in text.replace(" ", ""):
        return True
    return len(text) < min_chars


def is_not_found(result: ToolResult, tool_names: Sequence[str] = ()) -> bool:
    """
    Whether a backend answered that the requested tool does not exist.

    A "not found" error only counts when it names the tool, so a tool
    reporting a missing record is not mistaken for a missing tool.

    Args:
        result: The raw tool result.
        tool_names: Names the call is known by (original and sanitized).
    """
    if not result.is_error:
        return False
    lowered = result.text.lower()
    if "unknown tool" in lowered:
        return True
    if not any(marker in lowered for marker in NOT_FOUND_MARKERS):
        return False
    return any(name and name.lower() in lowered for name in tool_names)


def not_found_message(tool_name: str, available: Sequence[str]) -> str:
    """Corrective instruction sent back when the model called an unknown tool."""
    return (
        f"[SYSTEM ERROR]: Tool '{tool_name}' does not exist. You MUST use one of the following available "
        f"tools: [{', '.join(available)}]. Retry now using the correct tool name."
    )


def empty_result_hint(args: Dict[str, Any]) -> Optional[str]:
    """
    Normalization advice for a search that found nothing.

    Args:
        args: The effective arguments of the call.

    Returns:
        The hint, or None when the call carried no text arguments to vary.
    """
    terms = [value for value in args.values() if isinstance(value, str) and value.strip()]
    if not terms:
        return None
    quoted = ", ".join(f'"{term}"' for term in terms)
    return (
        f"[SYSTEM HINT]: The search returned NO results for {quoted}. "
        "1. Try REMOVING accents (e.g. 'São Paulo' -> 'Sao Paulo'). "
        "2. Try UPPERCASE or lowercase. "
        "3. Try a broader search term."
    )


def plan_retry(
    rules: Sequence[EmptyResultRetry],
    tool_name: str,
    args: Dict[str, Any],
    coordinates: Optional[CoordinatePolicy] = None,
) -> Optional[Dict[str, Any]]:
    """
    Pick the broadened arguments for a one-shot retry.

    The first rule matching the tool and actually changing the arguments wins.

    Args:
        rules: Configured retry rules.
        tool_name: Original name of the tool.
        args: Effective arguments of the empty call.
        coordinates: Coordinate policy, needed for fallback-location rules.

    Returns:
        The retry arguments, or None when no rule applies.
    """
    for rule in rules:
        if not matches_tool(rule.tools, tool_name):
            continue

        retry_args = {name: value for name, value in args.items() if name not in rule.drop}
        retry_args.update(rule.overrides)

        if rule.broaden and isinstance(retry_args.get(rule.broaden), str):
            words = retry_args[rule.broaden].split()
            if words:
                retry_args[rule.broaden] = words[0]

        if rule.use_fallback_location and coordinates is not None and coordinates.fallback is not None:
            for name in coordinates.latitude_fields:
                if name in args:
                    retry_args[name] = coordinates.fallback.latitude
            for name in coordinates.longitude_fields:
                if name in args:
                    retry_args[name] = coordinates.fallback.longitude

        if retry_args != args:
            logger.debug(f"Retry rule matched '{tool_name}': {retry_args}")
            return retry_args
    return None
