"""Schema checks for tool declarations and for the arguments sent to tools."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from ...exceptions import ToolValidationError
from ...logger import get_logger
from ..models import ToolDefinition, ToolResult

logger = get_logger(__name__)

MISSING_REQUIRED_PARAMS = "MISSING_REQUIRED_PARAMS"
INVALID_ARGUMENTS = "INVALID_ARGUMENTS"

# Only these validator keywords are reported back to the model as type problems.
_REPORTED_KEYWORDS = {"type", "enum"}


def assert_no_recursive_refs(schema: Dict[str, Any]) -> None:
    """
    Reject schemas whose local ``$ref`` graph contains a cycle.

    Args:
        schema: The JSON schema to check.

    Raises:
        ToolValidationError: If a recursive reference is found.
    """
    defs = schema.get("$defs", {}) or schema.get("definitions", {})

    def walk(node: Any, trail: Set[str]) -> None:
        if isinstance(node, list):
            for item in node:
                walk(item, trail)
            return
        if not isinstance(node, dict):
            return
        ref = node.get("$ref")
        if isinstance(ref, str):
            if ref in trail:
                msg = (
                    f"Recursive structure detected: {ref}. "
                    "Recursive structures are not allowed in tool inputs."
                )
                logger.error(msg)
                raise ToolValidationError(msg)
            target = ref.rsplit("/", 1)[-1] if ref.startswith("#/") else None
            if target in defs:
                walk(defs[target], trail | {ref})
            return
        for value in node.values():
            walk(value, trail)

    walk(schema, set())


def is_blank(value: Any) -> bool:
    """Whether an argument value counts as unset."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


@dataclass
class ValidationReport:
    """Outcome of checking a call's arguments against its tool schema.

    Attributes:
        tool: Original tool name.
        missing: Required arguments that are absent or blank.
        type_errors: Human-readable type/enum mismatches.
    """

    tool: str
    missing: List[str] = field(default_factory=list)
    type_errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing and not self.type_errors

    def to_result(self) -> ToolResult:
        """Render the report as an error result the model can act upon."""
        if self.missing:
            payload: Dict[str, Any] = {
                "error": MISSING_REQUIRED_PARAMS,
                "missing": self.missing,
                "suggestion": (
                    f"The tool '{self.tool}' requires the parameters: {', '.join(self.missing)}. "
                    "Ask the user for them or obtain them from another tool first."
                ),
                "tool": self.tool,
            }
        else:
            payload = {
                "error": INVALID_ARGUMENTS,
                "details": self.type_errors,
                "suggestion": "Fix the argument types and call the tool again.",
                "tool": self.tool,
            }
        return ToolResult.from_text(json.dumps(payload, ensure_ascii=False), is_error=True)


class ArgumentValidator:
    """Validates call arguments against a tool's normalized parameter schema."""

    def __init__(self) -> None:
        self._validators: Dict[str, Draft202012Validator] = {}

    def validate(self, tool: ToolDefinition, args: Dict[str, Any]) -> ValidationReport:
        """
        Check ``args`` against ``tool.parameters``.

        Args:
            tool: Definition of the tool being called, with a normalized schema.
            args: The effective arguments.

        Returns:
            A report listing missing required arguments and type mismatches.
        """
        report = ValidationReport(tool=tool.name)
        report.missing = [name for name in tool.required if is_blank(args.get(name))]

        validator = self._validator_for(tool)
        if validator is None:
            return report

        errors = sorted(validator.iter_errors(args), key=lambda err: list(err.path))
        for err in errors:
            if err.validator not in _REPORTED_KEYWORDS:
                continue
            location = "/".join(map(str, err.path)) or "<root>"
            report.type_errors.append(f"{location}: {err.message}")
        return report

    def _validator_for(self, tool: ToolDefinition) -> Draft202012Validator | None:
        key = json.dumps([tool.name, tool.parameters], sort_keys=True, default=str)
        cached = self._validators.get(key)
        if cached is not None:
            return cached
        try:
            Draft202012Validator.check_schema(tool.parameters)
        except SchemaError as exc:
            logger.warning(f"Schema of tool '{tool.name}' is not valid JSON schema, skipping checks: {exc.message}")
            return None
        validator = Draft202012Validator(tool.parameters)
        self._validators[key] = validator
        return validator
