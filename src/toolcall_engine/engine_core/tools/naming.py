"""Reversible mapping between backend tool names and provider-safe identifiers."""

import fnmatch
import re
import threading
from typing import Dict, Iterable, List, Optional

from ..logger import get_logger
from .models import ToolDefinition
from .schema.normalizer import normalize_root

logger = get_logger(__name__)

MAX_NAME_LENGTH = 64
NAMESPACE_SEPARATOR = "__"
FALLBACK_NAME = "unnamed_tool"
DEFAULT_DESCRIPTION = "No description provided"

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]")
_VALID_LEAD = re.compile(r"[A-Za-z_]")


def _fix_leading_char(name: str) -> str:
    if name and _VALID_LEAD.match(name[0]):
        return name
    return f"tool_{name}"


def sanitize_tool_name(name: Optional[str]) -> str:
    """
    Convert an arbitrary tool name into an identifier accepted by model providers.

    Only the last ``__``-separated segment is kept, so namespaced names such as
    ``api_<uuid>__list_items`` become ``list_items``. The result always matches
    ``^[A-Za-z_][A-Za-z0-9_]{0,63}$``.

    Args:
        name: The original tool name.

    Returns:
        The sanitized identifier.
    """
    if not name:
        return FALLBACK_NAME

    core = tool_core(name)
    sanitized = _INVALID_CHARS.sub("_", core)
    if not sanitized:
        return FALLBACK_NAME

    sanitized = _fix_leading_char(sanitized)
    if len(sanitized) > MAX_NAME_LENGTH:
        sanitized = sanitized[-MAX_NAME_LENGTH:]
        if not _VALID_LEAD.match(sanitized[0]):
            # Swap the first five chars for the prefix to stay within the limit
            sanitized = "tool_" + sanitized[5:]
    return sanitized


class NameMapping:
    """
    Request-scoped mapping from sanitized identifiers back to original tool names.

    The first original name registered for a sanitized identifier wins. A later,
    different name colliding on the same identifier is reported and left out of
    the tools exposed to the model, so every exposed identifier resolves to
    exactly one original.
    """

    def __init__(self) -> None:
        self._to_original: Dict[str, str] = {}
        self._lock = threading.Lock()

    def sanitize(self, name: Optional[str]) -> str:
        """Sanitize a name and remember the pair.

        Args:
            name: The original tool name.

        Returns:
            The sanitized identifier.
        """
        sanitized = sanitize_tool_name(name)
        original = name or sanitized
        with self._lock:
            known = self._to_original.setdefault(sanitized, original)
        if known != original:
            logger.warning(
                f"Tool name collision: '{original}' and '{known}' both sanitize to '{sanitized}'. Keeping '{known}'."
            )
        return sanitized

    def owns(self, sanitized: str, original: str) -> bool:
        """Whether ``sanitized`` resolves to ``original`` in this mapping."""
        with self._lock:
            return self._to_original.get(sanitized) == original

    def resolve(self, sanitized: str) -> str:
        """Map a sanitized identifier back to the original tool name.

        Unknown identifiers resolve to themselves.

        Args:
            sanitized: The identifier the model used.

        Returns:
            The original tool name.
        """
        with self._lock:
            return self._to_original.get(sanitized, sanitized)

    def __contains__(self, sanitized: object) -> bool:
        with self._lock:
            return sanitized in self._to_original

    def __len__(self) -> int:
        with self._lock:
            return len(self._to_original)


def adapt_tools(definitions: Iterable[ToolDefinition], mapping: NameMapping) -> List[ToolDefinition]:
    """
    Produce provider-safe copies of tool definitions.

    Names are sanitized through ``mapping``, descriptions defaulted and
    parameter schemas normalized. Definitions losing a name collision are
    skipped.

    Args:
        definitions: Tool definitions as declared by the backends.
        mapping: The request's name mapping.

    Returns:
        The adapted definitions, in input order.
    """
    adapted: List[ToolDefinition] = []
    exposed = set()
    for definition in definitions:
        sanitized = mapping.sanitize(definition.name)
        if sanitized in exposed or not mapping.owns(sanitized, definition.name or sanitized):
            logger.debug(f"Skipping tool '{definition.name}': identifier '{sanitized}' already exposed.")
            continue
        exposed.add(sanitized)
        adapted.append(
            ToolDefinition(
                name=sanitized,
                description=definition.description or DEFAULT_DESCRIPTION,
                parameters=normalize_root(definition.parameters),
            )
        )
    return adapted


def tool_core(name: str) -> str:
    """The last ``__``-separated segment of a tool name."""
    return name.split(NAMESPACE_SEPARATOR)[-1] or name


def find_tool(name: str, catalog: Iterable[ToolDefinition]) -> Optional[ToolDefinition]:
    """Look up a definition by exact name, then by namespace-insensitive core name."""
    catalog = list(catalog)
    for definition in catalog:
        if definition.name == name:
            return definition
    core = tool_core(name)
    for definition in catalog:
        if tool_core(definition.name) == core:
            return definition
    return None


def matches_tool(patterns: Iterable[str], name: str) -> bool:
    """Whether a tool name matches any of the glob patterns, namespaced or not."""
    candidates = (name, tool_core(name))
    return any(fnmatch.fnmatchcase(candidate, pattern) for pattern in patterns for candidate in candidates)
