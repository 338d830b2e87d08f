"""Cleanup of raw model text before it reaches the user."""

import re

FALLBACK_RESPONSE = "I found some information, but could not format the answer properly. Please try asking again."

# Argument lists with one level of nesting: "(...)" or "{...}".
_CALL_ARGS = r"(?:\([^()]*(?:\([^()]*\)[^()]*)*\)|\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\})"

_PATTERNS = (
    re.compile(r"<function=.*?</function>", re.DOTALL),
    re.compile(r"<function>\s*[\w.-]*\s*</function>\s*" + _CALL_ARGS + "?"),
    re.compile(r"<function=[^>]*>\s*" + _CALL_ARGS + "?"),
    re.compile(r"</?[A-Za-z][\w-]*(?:\s[^<>]*)?/?>"),
    re.compile(r'\{\s*"name"\s*:\s*"[^"]*"\s*,\s*"args"\s*:\s*\{.*?\}\s*\}', re.DOTALL),
)


def sanitize_response(text: str) -> str:
    """
    Remove leaked call syntax and markup from a model answer.

    Args:
        text: The raw answer.

    Returns:
        The cleaned answer, or a friendly fallback sentence when nothing is left.
    """
    cleaned = text or ""
    for pattern in _PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned).strip()
    return cleaned or FALLBACK_RESPONSE
