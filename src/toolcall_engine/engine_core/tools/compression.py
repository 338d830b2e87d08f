"""Shrinking tool results to fit a context or UI budget."""

import json
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from ..config import CompressionPolicy
from ..logger import get_logger
from .context import parse_json_payload
from .models import TextContent, ToolResult

logger = get_logger(__name__)

LIST_KEYS = ("items", "data")


def _lookup(record: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path such as ``school.name`` inside a record."""
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class ResultCompressor:
    """
    Reduces tool results to a bounded number of list items.

    For JSON list payloads (top-level, or under ``items``/``data``) longer
    than the prune threshold, the compressor strips heavy prose fields and
    regroups flat parent/child records when that shortens the list. The list
    is then truncated to ``item_limit`` entries, and further while the JSON
    exceeds ``item_limit * chars_per_item`` characters, with a
    ``_truncated``/``_totalItems`` annotation placed ahead of the data. Other
    text above that budget (or a single oversized record) is cut with a marker.
    """

    def __init__(self, policy: Optional[CompressionPolicy] = None) -> None:
        self.policy = policy or CompressionPolicy()

    def compress(self, result: ToolResult, item_limit: int) -> ToolResult:
        """
        Compress every text block of a result.

        Args:
            result: The raw tool result. Left untouched.
            item_limit: Maximum number of list entries to keep.

        Returns:
            A new, compressed result.
        """
        return ToolResult(
            is_error=result.is_error,
            content=[TextContent(text=self._compress_text(item.text, item_limit)) for item in result.content],
        )

    def _compress_text(self, text: str, item_limit: int) -> str:
        char_limit = item_limit * self.policy.chars_per_item
        payload = parse_json_payload(text)
        if isinstance(payload, (list, dict)):
            reshaped = self._compress_payload(payload, item_limit, char_limit)
            if reshaped is not None:
                text = json.dumps(reshaped, ensure_ascii=False)

        if len(text) > char_limit:
            logger.debug(f"Truncating text from {len(text)} to {char_limit} chars")
            text = text[:char_limit] + f"\n\n... [DATA TRUNCATED - Showing first {char_limit} chars]"
        return text

    def _compress_payload(self, payload: Any, item_limit: int, char_limit: int) -> Optional[Any]:
        """Return the reshaped payload, or None when nothing had to change."""
        key, entries = self._find_list(payload)
        if entries is None:
            return None

        changed = False
        if len(entries) > self.policy.prune_threshold:
            entries, changed = self._prune(entries)
            grouped = self._regroup(entries)
            if grouped is not None and len(grouped) < len(entries):
                logger.info(f"Grouped {len(entries)} items into {len(grouped)} groups")
                entries = grouped
                changed = True

        total = len(entries)
        shown = min(total, item_limit)
        reshaped = self._build(payload, key, entries[:shown], total)
        # Large records: keep fewer of them rather than cutting the JSON apart.
        while shown > 1 and len(json.dumps(reshaped, ensure_ascii=False)) > char_limit:
            shown -= 1
            reshaped = self._build(payload, key, entries[:shown], total)

        if shown < total:
            logger.info(f"Truncated list from {total} to {shown} items")
        elif not changed:
            return None
        return reshaped

    @staticmethod
    def _build(payload: Any, key: Optional[str], entries: List[Any], total: int) -> Any:
        """Put ``entries`` back in place, annotated when some were left out."""
        if len(entries) == total:
            if key is None:
                return entries
            return {**payload, key: entries}

        shown = len(entries)
        reshaped: Dict[str, Any] = {
            "_truncated": True,
            "_totalItems": total,
            "_message": f"Showing {shown} of {total} items to prevent data overload",
        }
        if key is None:
            reshaped["items"] = entries
        else:
            reshaped.update(payload)
            reshaped[key] = entries
        return reshaped

    @staticmethod
    def _find_list(payload: Any) -> Tuple[Optional[str], Optional[List[Any]]]:
        if isinstance(payload, list):
            return None, payload
        if isinstance(payload, dict):
            for key in LIST_KEYS:
                if isinstance(payload.get(key), list):
                    return key, payload[key]
        return None, None

    def _prune(self, entries: List[Any]) -> Tuple[List[Any], bool]:
        heavy = set(self.policy.heavy_fields)
        pruned = False
        result = []
        for entry in entries:
            if isinstance(entry, dict) and heavy.intersection(entry):
                entry = {name: value for name, value in entry.items() if name not in heavy}
                pruned = True
            result.append(entry)
        return result, pruned

    def _regroup(self, entries: List[Any]) -> Optional[List[Dict[str, Any]]]:
        """Group flat ``{parent, child}`` records into ``{group, children}`` records."""
        records = [entry for entry in entries if isinstance(entry, dict)]
        if len(records) < 2 or len(records) != len(entries):
            return None

        group_path = self._dominant_field(records, self.policy.group_fields)
        if group_path is None:
            return None
        if self._dominant_field(records, self.policy.leaf_fields) is None:
            return None

        top_key = group_path.split(".")[0]
        groups: Dict[str, Dict[str, Any]] = {}
        ungrouped: List[Dict[str, Any]] = []
        for record in records:
            group = _lookup(record, group_path)
            if not isinstance(group, (str, int, float)) or group == "":
                ungrouped.append(record)
                continue
            child = {name: value for name, value in record.items() if name != top_key}
            groups.setdefault(str(group), {"group": group, "children": []})["children"].append(child)
        return [*groups.values(), *ungrouped]

    @staticmethod
    def _dominant_field(records: List[Dict[str, Any]], candidates: List[str]) -> Optional[str]:
        """The candidate field present (non-empty) in most records, if it covers a majority."""
        counts: Counter = Counter()
        for record in records:
            for path in candidates:
                if _lookup(record, path) not in (None, ""):
                    counts[path] += 1
        if not counts:
            return None
        path, count = counts.most_common(1)[0]
        return path if count * 2 > len(records) else None
