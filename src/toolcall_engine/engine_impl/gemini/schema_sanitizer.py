"""
Final Gemini-specific pass over already normalized parameter schemas.

Gemini's ``Schema`` type rejects a few keywords that other providers accept
(``additionalProperties``, ``const``, ``examples``) and refuses ``required``
entries that are not declared under ``properties``.
"""

from functools import singledispatch
from typing import Any, Dict, Set, cast

UNSUPPORTED_KEYS = frozenset({"additionalProperties", "const", "examples", "$schema", "$id"})


def sanitize(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively strip everything the Gemini API would reject.

    Args:
        schema: The tool parameter schema.

    Returns:
        A new schema dictionary ready for a ``FunctionDeclaration``.
    """
    return cast(Dict[str, Any], _sanitize(schema, set()))


@singledispatch
def _sanitize(node: Any, seen: Set[int]) -> Any:
    return node


@_sanitize.register(dict)
def _(node: dict, seen: Set[int]) -> dict:
    if id(node) in seen:
        return node
    seen.add(id(node))

    result = {key: _sanitize(value, seen) for key, value in node.items() if key not in UNSUPPORTED_KEYS}
    if "properties" in node and isinstance(node["properties"], dict):
        # Property names are user data, never keywords to drop
        result["properties"] = {name: _sanitize(value, seen) for name, value in node["properties"].items()}

    required = result.get("required")
    if isinstance(required, list):
        declared = set((result.get("properties") or {}).keys())
        kept = [name for name in required if name in declared]
        if kept:
            result["required"] = kept
        else:
            result.pop("required")

    seen.discard(id(node))
    return result


@_sanitize.register(list)
def _(node: list, seen: Set[int]) -> list:
    return [_sanitize(item, seen) for item in node]
