"""
Normalization of tool parameter schemas for strict model providers.

Providers reject many JSON-schema features that third-party tool servers emit
freely (references, tuple arrays, legacy ``required: true`` flags, ...). The
functions here rewrite a schema into the conservative subset every provider
accepts. Normalization is pure and idempotent.
"""

import copy
from functools import singledispatch
from typing import Any, Dict, cast

from ...logger import get_logger

logger = get_logger(__name__)

STRIPPED_KEYS = frozenset(
    {
        "$schema",
        "$id",
        "$ref",
        "$defs",
        "definitions",
        "$comment",
        "minItems",
        "maxItems",
        "uniqueItems",
        "nullable",
        "readOnly",
        "writeOnly",
    }
)

COMPOSITE_KEYS = ("anyOf", "oneOf", "allOf")

DEFAULT_ITEMS: Dict[str, Any] = {"type": "string"}


def normalize(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rewrite a parameter schema into the provider-safe subset.

    The input is never mutated.

    Args:
        schema: The tool parameter schema.

    Returns:
        A new schema without ``$ref``/``$schema`` keys, tuple ``items`` or
        doubly nested arrays, where every array and object node carries an
        explicit ``type``.
    """
    return cast(Dict[str, Any], _normalize_node(schema))


def normalize_root(schema: Any) -> Dict[str, Any]:
    """Normalize a tool's top-level parameter schema, which must describe an object."""
    if not isinstance(schema, dict):
        return {"type": "object", "properties": {}}
    normalized = normalize(schema)
    normalized["type"] = "object"
    normalized.setdefault("properties", {})
    return normalized


@singledispatch
def _normalize_node(node: Any) -> Any:
    """Leaf values are copied unchanged."""
    return copy.deepcopy(node)


@_normalize_node.register(list)
def _(node: list) -> list:
    return [_normalize_node(item) for item in node]


@_normalize_node.register(dict)
def _(node: dict) -> dict:
    result: Dict[str, Any] = {}
    for key, value in node.items():
        if key in STRIPPED_KEYS:
            continue
        if key == "required" and not isinstance(value, list):
            # Legacy draft-3 style boolean flag
            continue
        if key == "properties":
            if isinstance(value, dict):
                result[key] = {name: _normalize_node(prop) for name, prop in value.items()}
            continue
        if key == "additionalProperties":
            result[key] = _normalize_node(value)
            continue
        if key == "items":
            continue
        if key in COMPOSITE_KEYS and isinstance(value, list):
            result[key] = [_normalize_node(option) for option in value]
            continue
        result[key] = copy.deepcopy(value)

    if "items" in node or result.get("type") == "array":
        result["type"] = "array"
        result["items"] = _normalize_items(node.get("items"))

    if "properties" in result and "type" not in result:
        result["type"] = "object"

    if "required" in result:
        declared = result.get("properties") or {}
        required = [name for name in result["required"] if name in declared]
        if required:
            result["required"] = required
        else:
            result.pop("required")

    return result


def _coerce_items(items: Any) -> Dict[str, Any]:
    """Reduce an ``items`` value to a single schema object."""
    if isinstance(items, list):
        items = items[0] if items and isinstance(items[0], dict) else None
    if not isinstance(items, dict):
        return dict(DEFAULT_ITEMS)
    if "$ref" in items:
        return {"type": "object"}
    return items


def _normalize_items(items: Any) -> Dict[str, Any]:
    """Normalize an array's ``items``, collapsing arrays of arrays into their innermost element schema."""
    items = _coerce_items(items)
    while items.get("type") == "array" or ("items" in items and "type" not in items):
        logger.debug("Flattening nested array schema")
        items = _coerce_items(items.get("items"))
    return cast(Dict[str, Any], _normalize_node(items))
