"""
Recovery of tool calls that a model wrote as text instead of emitting them natively.

Some models answer with ``search_items({"q": "x"})``, ``<function=search_items>{...}</function>``
or a bare JSON object when they mean to call a tool. ``CallRecoveryParser``
runs a fixed sequence of independent strategies over such text; the first
strategy that yields calls wins. Only names of tools the model was offered
are ever returned.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..logger import get_logger
from .call_protocol import ToolCall
from .models import ToolDefinition

logger = get_logger(__name__)

QUERY_FIELDS = ("query", "q", "search", "search_term", "term", "keyword", "text", "name")
SEARCH_FIELDS = ("search", "search_term", "term", "query", "q", "keyword", "text", "name")

_FENCE = re.compile(r"^```[\w-]*\s*(.*?)\s*```$", re.DOTALL)
_QUOTED_PAIR = re.compile(r"""(\w+)\s*=\s*(["'])(.*?)\2""", re.DOTALL)
_BARE_PAIR = re.compile(r"(\w+)\s*=\s*([^,\s\"']+)")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_FUNCTION_TAG = re.compile(r"<function>\s*([\w.\-]+)\s*</function>\s*", re.IGNORECASE)
_FUNCTION_ATTR = re.compile(r"<function=\s*([\w.\-]+)\s*>(.*?)</function>", re.IGNORECASE | re.DOTALL)


@dataclass
class RecoveryResult:
    """Calls recovered from a model's text and the text that remains once they are removed.

    Attributes:
        calls: Recovered calls, in textual order.
        text: Residual prose with every matched call span removed.
        strategy: Name of the strategy that produced the calls.
    """

    calls: List[ToolCall] = field(default_factory=list)
    text: str = ""
    strategy: Optional[str] = None


class ToolIndex:
    """Known tool names and their schemas, with case-insensitive lookup."""

    def __init__(self, known_tool_names: Iterable[str], tool_catalog: Iterable[ToolDefinition] = ()) -> None:
        self.names = [name for name in known_tool_names if name]
        self._by_lower = {name.lower(): name for name in self.names}
        self._definitions = {definition.name: definition for definition in tool_catalog}

    def canonical(self, name: Any) -> Optional[str]:
        if not isinstance(name, str):
            return None
        if name in self.names:
            return name
        return self._by_lower.get(name.strip().lower())

    def definition(self, name: str) -> Optional[ToolDefinition]:
        return self._definitions.get(name)


def coerce_scalar(raw: str, schema: Optional[Mapping[str, Any]] = None) -> Any:
    """
    Convert an unquoted textual value into a JSON scalar.

    Values declared as strings by ``schema`` are left untouched.

    Args:
        raw: The raw token.
        schema: The property schema of the target argument, if known.

    Returns:
        A number, boolean, None or the original string.
    """
    declared = (schema or {}).get("type")
    if declared == "string":
        return raw
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    if _NUMBER.match(raw):
        if "." not in raw:
            return float(raw) if declared == "number" else int(raw)
        # A fractional value for an integer field stays a string for the validator to reject.
        if declared == "integer":
            return raw
        return float(raw)
    return raw


def positional_args(value: Any, tool_name: str, tool: Optional[ToolDefinition]) -> Dict[str, Any]:
    """
    Map a single unnamed value onto the most plausible argument of a tool.

    Args:
        value: The positional value.
        tool_name: Name of the tool being called.
        tool: Its definition, if known.

    Returns:
        A one-entry argument dictionary.
    """
    props = tool.properties if tool else {}
    target = None
    if len(props) == 1:
        target = next(iter(props))
    else:
        preferred = SEARCH_FIELDS if "search" in tool_name.lower() and "query" not in tool_name.lower() else QUERY_FIELDS
        target = next((name for name in preferred if name in props), None)
        if target is None and tool is not None:
            target = next((name for name in tool.required if props.get(name, {}).get("type") == "string"), None)
    if target is None:
        return {"value": value}

    schema = props.get(target, {})
    if isinstance(value, str):
        value = coerce_scalar(value, schema) if schema.get("type") in ("integer", "number", "boolean") else value
    if schema.get("type") == "array" and not isinstance(value, list):
        value = [value]
    return {target: value}


def parse_arguments(raw: str, tool_name: str, tool: Optional[ToolDefinition]) -> Dict[str, Any]:
    """
    Parse the text between a call's parentheses.

    JSON objects are used as-is, ``key=value`` pairs are collected with
    schema-aware coercion, anything else becomes one positional value.

    Args:
        raw: The raw argument text.
        tool_name: Name of the tool being called.
        tool: Its definition, if known.

    Returns:
        The parsed arguments.
    """
    raw = raw.strip()
    if not raw:
        return {}

    if raw.startswith("{"):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed

    props = tool.properties if tool else {}
    args: Dict[str, Any] = {}
    for key, _, value in _QUOTED_PAIR.findall(raw):
        args[key] = value
    remainder = _QUOTED_PAIR.sub("", raw)
    for key, value in _BARE_PAIR.findall(remainder):
        args.setdefault(key, coerce_scalar(value, props.get(key)))
    if args:
        return args

    return positional_args(raw.strip("\"'"), tool_name, tool)


def closing_paren(text: str, open_index: int) -> Optional[int]:
    """Index of the parenthesis closing the one at ``open_index``, honouring quotes and nesting."""
    depth = 0
    quote: Optional[str] = None
    escaped = False
    for index in range(open_index, len(text)):
        char = text[index]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    return None


def remove_spans(text: str, spans: Sequence[Tuple[int, int]]) -> str:
    """Cut the given ``(start, end)`` spans out of ``text`` and tidy the whitespace left behind."""
    pieces = []
    cursor = 0
    for start, end in sorted(spans):
        if start < cursor:
            continue
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])
    cleaned = "".join(pieces)
    cleaned = re.sub(r"[ \t]+\n", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return re.sub(r"[ \t]{2,}", " ", cleaned).strip()


class RecoveryStrategy(ABC):
    """One way of spotting tool calls in free text."""

    name: str = "strategy"

    @abstractmethod
    def recover(self, text: str, index: ToolIndex) -> Optional[RecoveryResult]:
        """Return recovered calls, or None when the strategy does not apply."""
        ...


class WholeTextJsonStrategy(RecoveryStrategy):
    """The entire answer is a JSON call: ``{"name": ..., "args": {...}}`` or ``["name", args]``."""

    name = "whole_text_json"

    def recover(self, text: str, index: ToolIndex) -> Optional[RecoveryResult]:
        body = text.strip()
        fenced = _FENCE.match(body)
        if fenced:
            body = fenced.group(1).strip()
        if not body or body[0] not in "{[":
            return None
        try:
            data = json.loads(body)
        except ValueError:
            return None

        if isinstance(data, dict):
            tool_name = index.canonical(data.get("name") or data.get("tool"))
            payload = next((data[key] for key in ("args", "parameters", "arguments") if key in data), {})
        elif isinstance(data, list) and data:
            tool_name = index.canonical(data[0])
            payload = data[1] if len(data) > 1 else {}
        else:
            return None
        if tool_name is None:
            return None

        tool = index.definition(tool_name)
        if isinstance(payload, str):
            try:
                decoded = json.loads(payload)
            except ValueError:
                decoded = None
            payload = decoded if isinstance(decoded, dict) else positional_args(payload, tool_name, tool)
        elif payload is None:
            payload = {}
        elif not isinstance(payload, dict):
            payload = positional_args(payload, tool_name, tool)

        return RecoveryResult(calls=[ToolCall(name=tool_name, args=payload)], text="", strategy=self.name)


class TaggedFunctionStrategy(RecoveryStrategy):
    """XML-ish call syntax: ``<function>name</function>(args)`` and ``<function=name>args</function>``."""

    name = "tagged_function"

    def recover(self, text: str, index: ToolIndex) -> Optional[RecoveryResult]:
        found: List[Tuple[int, ToolCall]] = []
        spans: List[Tuple[int, int]] = []

        for match in _FUNCTION_TAG.finditer(text):
            tool_name = index.canonical(match.group(1))
            end = match.end()
            raw_args = ""
            if end < len(text) and text[end] == "(":
                close = closing_paren(text, end)
                if close is not None:
                    raw_args = text[end + 1 : close]
                    end = close + 1
            if tool_name is None:
                continue
            found.append((match.start(), ToolCall(tool_name, self._args(raw_args))))
            spans.append((match.start(), end))

        for match in _FUNCTION_ATTR.finditer(text):
            tool_name = index.canonical(match.group(1))
            if tool_name is None:
                continue
            found.append((match.start(), ToolCall(tool_name, self._args(match.group(2)))))
            spans.append((match.start(), match.end()))

        if not found:
            return None
        found.sort(key=lambda pair: pair[0])
        return RecoveryResult(
            calls=[call for _, call in found], text=remove_spans(text, spans), strategy=self.name
        )

    @staticmethod
    def _args(raw: str) -> Dict[str, Any]:
        raw = raw.strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        return {"value": raw}


class BareCallStrategy(RecoveryStrategy):
    """Function-call syntax with a known tool name: ``name(args)``."""

    name = "bare_call"

    def recover(self, text: str, index: ToolIndex) -> Optional[RecoveryResult]:
        found: List[Tuple[int, ToolCall]] = []
        spans: List[Tuple[int, int]] = []

        # Longer names first so that a name containing another is claimed once
        for tool_name in sorted(index.names, key=len, reverse=True):
            pattern = re.compile(rf"(?<![\w.]){re.escape(tool_name)}\s*\(", re.IGNORECASE)
            for match in pattern.finditer(text):
                start = match.start()
                if any(s <= start < e for s, e in spans):
                    continue
                close = closing_paren(text, match.end() - 1)
                if close is None:
                    continue
                raw_args = text[match.end() : close]
                args = parse_arguments(raw_args, tool_name, index.definition(tool_name))
                found.append((start, ToolCall(tool_name, args)))
                spans.append((start, close + 1))

        if not found:
            return None
        found.sort(key=lambda pair: pair[0])
        return RecoveryResult(
            calls=[call for _, call in found], text=remove_spans(text, spans), strategy=self.name
        )


DEFAULT_STRATEGIES: Tuple[RecoveryStrategy, ...] = (
    WholeTextJsonStrategy(),
    TaggedFunctionStrategy(),
    BareCallStrategy(),
)


class CallRecoveryParser:
    """Runs recovery strategies in order and returns the first match."""

    def __init__(self, strategies: Optional[Sequence[RecoveryStrategy]] = None) -> None:
        self.strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    def recover(
        self,
        raw_text: str,
        known_tool_names: Iterable[str],
        tool_catalog: Iterable[ToolDefinition] = (),
    ) -> RecoveryResult:
        """
        Extract tool calls from a model's text answer.

        Args:
            raw_text: The model's text.
            known_tool_names: Names of the tools offered to the model.
            tool_catalog: Their (sanitized) definitions, used for argument mapping.

        Returns:
            The recovered calls and the residual text. When no strategy applies,
            no calls and the unchanged text.
        """
        if not raw_text or not raw_text.strip():
            return RecoveryResult(text=raw_text or "")

        index = ToolIndex(known_tool_names, tool_catalog)
        if not index.names:
            return RecoveryResult(text=raw_text)

        for strategy in self.strategies:
            result = strategy.recover(raw_text, index)
            if result and result.calls:
                logger.info(
                    f"Recovered {len(result.calls)} tool call(s) via {strategy.name}: "
                    f"{[call.name for call in result.calls]}"
                )
                return result

        logger.debug("No tool call recovered from model text.")
        return RecoveryResult(text=raw_text)
