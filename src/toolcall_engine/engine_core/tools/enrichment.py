"""Argument enrichment: filling in the tool arguments a model leaves unset."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..config import EnrichmentPolicy, GeoPoint, TextSlotRule
from ..logger import get_logger
from .context import ContextAccumulator
from .models import ToolDefinition
from .naming import find_tool, matches_tool
from .schema.validator import is_blank

logger = get_logger(__name__)

_JSON_TYPES: Dict[str, tuple] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
    "null": (type(None),),
}


@dataclass
class SessionContext:
    """Per-request inputs the enrichment layer may draw from.

    Attributes:
        location: The user's location, when the caller knows it.
        accumulator: Values discovered by earlier calls of the same request.
    """

    location: Optional[GeoPoint] = None
    accumulator: ContextAccumulator = field(default_factory=ContextAccumulator)


def accepts_value(schema: Any, value: Any) -> bool:
    """Whether ``value`` is compatible with the declared ``type`` of a property schema."""
    if not isinstance(schema, dict) or "type" not in schema:
        return True
    declared = schema["type"] if isinstance(schema["type"], list) else [schema["type"]]
    for type_name in declared:
        expected = _JSON_TYPES.get(type_name)
        if expected is None:
            return True
        if isinstance(value, bool) and type_name in ("integer", "number"):
            continue
        if isinstance(value, expected):
            return True
    return False


def fit_default(schema: Any, value: Any) -> Optional[Any]:
    """
    Adapt an engine-supplied default to the declared type of a property.

    Scalars are rendered as JSON text for properties declared as strings
    (``10`` becomes ``"10"``, ``True`` becomes ``"true"``).

    Args:
        schema: The property schema.
        value: The default the engine wants to inject.

    Returns:
        The value to inject, or None when the property cannot hold it.
    """
    if accepts_value(schema, value):
        return value
    declared = schema["type"] if isinstance(schema["type"], list) else [schema["type"]]
    if "string" in declared and isinstance(value, (bool, int, float)):
        return json.dumps(value)
    return None


class ArgumentEnricher:
    """
    Applies an ``EnrichmentPolicy`` to the arguments of one call.

    Every rule only touches arguments the tool declares and the call leaves
    unset. The single exception: auto-populating a locality slot removes the
    raw coordinates of the same call, so the backend never receives
    contradictory location signals.
    """

    def __init__(self, policy: Optional[EnrichmentPolicy] = None) -> None:
        self.policy = policy or EnrichmentPolicy()
        self._patterns = {
            rule.name: [re.compile(pattern) for pattern in rule.patterns] for rule in self.policy.text_slots
        }

    def enrich(
        self,
        tool_name: str,
        raw_args: Optional[Dict[str, Any]],
        user_message: str,
        tool_catalog: Iterable[ToolDefinition],
        session: Optional[SessionContext] = None,
    ) -> Dict[str, Any]:
        """
        Compute the effective arguments for a call.

        Args:
            tool_name: Original name of the tool being called.
            raw_args: Arguments proposed by the model. Not mutated.
            user_message: The user's request text.
            tool_catalog: Definitions of the available tools.
            session: Location and context accumulator of the request.

        Returns:
            A new argument dictionary.
        """
        args = dict(raw_args or {})
        session = session or SessionContext()

        tool = find_tool(tool_name, tool_catalog)
        if tool is None or not tool.properties:
            return args

        props = tool.properties
        applied: List[str] = []

        for name, value in self.policy.pagination_defaults.items():
            if name in props and is_blank(args.get(name)):
                self._put(props, args, name, value, applied)

        locality_set = self._apply_text_slots(props, args, user_message or "", applied)

        if not locality_set:
            self._apply_coordinates(props, args, session.location, applied)

        for name, value in self.policy.flag_defaults.items():
            if name in props and args.get(name) is None:
                self._put(props, args, name, value, applied)

        self._inject_context(tool.name, props, args, session.accumulator, applied)

        for default in self.policy.non_empty_defaults:
            if default.tools and not matches_tool(default.tools, tool.name):
                continue
            if default.name in props and is_blank(args.get(default.name)):
                self._put(props, args, default.name, default.value, applied)

        if applied:
            logger.info(f"Enriched '{tool_name}' arguments: {', '.join(applied)}")
        return args

    @staticmethod
    def _put(props: Dict[str, Any], args: Dict[str, Any], name: str, value: Any, applied: List[str]) -> None:
        fitted = fit_default(props[name], value)
        if fitted is None:
            logger.debug(f"Skipping default for '{name}': {value!r} does not fit {props[name]}")
            return
        args[name] = fitted
        applied.append(name)

    def _apply_text_slots(
        self, props: Dict[str, Any], args: Dict[str, Any], user_message: str, applied: List[str]
    ) -> bool:
        locality_set = False
        for rule in self.policy.text_slots:
            if rule.name not in props:
                continue
            if not is_blank(args.get(rule.name)):
                locality_set = locality_set or rule.clears_coordinates
                continue
            value = self._extract(rule, user_message)
            if value is None:
                continue
            args[rule.name] = value
            applied.append(rule.name)
            if rule.clears_coordinates:
                locality_set = True
                cleared = [name for name in self.policy.coordinates.all_fields if args.pop(name, None) is not None]
                if cleared:
                    logger.debug(f"Locality '{value}' overrides coordinates {cleared}")
        return locality_set

    def _extract(self, rule: TextSlotRule, user_message: str) -> Optional[str]:
        for pattern in self._patterns.get(rule.name, []):
            match = pattern.search(user_message)
            if not match or not match.group(1):
                continue
            value = match.group(1).strip()
            if rule.min_length <= len(value) <= rule.max_length:
                return value.upper() if rule.uppercase else value
        return None

    def _apply_coordinates(
        self, props: Dict[str, Any], args: Dict[str, Any], location: Optional[GeoPoint], applied: List[str]
    ) -> None:
        coords = self.policy.coordinates
        lat_fields = [name for name in coords.latitude_fields if name in props]
        lon_fields = [name for name in coords.longitude_fields if name in props]
        if not lat_fields and not lon_fields:
            return
        if any(not is_blank(args.get(name)) for name in (*lat_fields, *lon_fields)):
            return
        point = location or coords.fallback
        if point is None:
            return
        for name in lat_fields:
            self._put(props, args, name, point.latitude, applied)
        for name in lon_fields:
            self._put(props, args, name, point.longitude, applied)

    def _inject_context(
        self,
        tool_name: str,
        props: Dict[str, Any],
        args: Dict[str, Any],
        accumulator: ContextAccumulator,
        applied: List[str],
    ) -> None:
        if not len(accumulator):
            return

        def offer(name: str, value: Any) -> None:
            if name in props and is_blank(args.get(name)) and accepts_value(props[name], value):
                args[name] = value
                applied.append(name)

        if self.policy.inject_same_name:
            for name in list(props):
                value = accumulator.get(name)
                if not is_blank(value):
                    offer(name, value)

        for binding in self.policy.slot_bindings:
            if binding.tools and not matches_tool(binding.tools, tool_name):
                continue
            value = accumulator.get(binding.slot)
            if is_blank(value):
                continue
            for name in binding.fields:
                offer(name, value)
