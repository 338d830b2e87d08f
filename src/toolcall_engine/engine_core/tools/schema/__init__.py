"""Schema normalization and argument validation."""

from .normalizer import normalize, normalize_root
from .validator import (
    ArgumentValidator,
    ValidationReport,
    assert_no_recursive_refs,
    is_blank,
    MISSING_REQUIRED_PARAMS,
    INVALID_ARGUMENTS,
)

__all__ = [
    "normalize",
    "normalize_root",
    "ArgumentValidator",
    "ValidationReport",
    "assert_no_recursive_refs",
    "is_blank",
    "MISSING_REQUIRED_PARAMS",
    "INVALID_ARGUMENTS",
]
