"""Request-scoped memory of values discovered by earlier tool calls."""

import json
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..config import ExtractionRule
from ..logger import get_logger
from .models import ToolResult

logger = get_logger(__name__)


def parse_json_payload(text: str) -> Any:
    """Decode a tool's text output, returning None for anything that is not JSON."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def iter_records(payload: Any) -> List[Dict[str, Any]]:
    """Records of a tool payload: a top-level list, an ``items``/``data`` list, or a single object."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in ("items", "data"):
            if isinstance(payload.get(key), list):
                return [item for item in payload[key] if isinstance(item, dict)]
        return [payload]
    return []


class ContextAccumulator:
    """
    Slot/value store shared by the calls of one request.

    Created empty for every request and discarded with it. The argument
    enrichment layer reads it, entity extraction writes it after each
    successful tool execution.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._slots: Dict[str, Any] = dict(initial or {})

    def get(self, slot: str, default: Any = None) -> Any:
        return self._slots.get(slot, default)

    def set(self, slot: str, value: Any) -> None:
        logger.debug(f"Context slot '{slot}' set to {value!r}")
        self._slots[slot] = value

    def snapshot(self) -> Dict[str, Any]:
        """A shallow copy of the current slots."""
        return dict(self._slots)

    def __contains__(self, slot: object) -> bool:
        return slot in self._slots

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def absorb(self, result: ToolResult, rules: Sequence[ExtractionRule]) -> List[str]:
        """
        Run entity extraction over a successful result.

        Args:
            result: The uncompressed tool result.
            rules: Extraction rules to apply, in order.

        Returns:
            Names of the slots that were written.
        """
        if result.is_error or not rules:
            return []

        records: List[Dict[str, Any]] = []
        for item in result.content:
            records.extend(iter_records(parse_json_payload(item.text)))
        if not records:
            return []

        written = []
        for rule in rules:
            matches = [record for record in records if self._matches(record, rule)]
            if not matches:
                continue
            if rule.mode == "first":
                value = self._project(matches[0], rule)
            else:
                value = [self._project(record, rule) for record in matches[: rule.max_items]]
            self.set(rule.slot, value)
            written.append(rule.slot)

        if written:
            logger.info(f"Extracted context slots: {', '.join(written)}")
        return written

    @staticmethod
    def _matches(record: Dict[str, Any], rule: ExtractionRule) -> bool:
        if record.get(rule.key_field) in (None, ""):
            return False
        return not rule.require_any or any(record.get(name) not in (None, "") for name in rule.require_any)

    @staticmethod
    def _project(record: Dict[str, Any], rule: ExtractionRule) -> Any:
        if rule.keep_fields:
            return {name: record[name] for name in (rule.key_field, *rule.keep_fields) if name in record}
        return record[rule.key_field]
