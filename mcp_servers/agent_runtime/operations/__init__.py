"""Whitelisted operations a model may propose, and their validation."""

from __future__ import annotations

from .parser import normalize_operation, parse_operations_from_response
from .schema import SAFE_OPERATIONS, is_valid_selector, safe_operation_names, sanitize_selector
from .validator import BatchValidationResult, OperationValidator, SafeOperation, ValidationResult

__all__ = [
    "BatchValidationResult",
    "OperationValidator",
    "SAFE_OPERATIONS",
    "SafeOperation",
    "ValidationResult",
    "is_valid_selector",
    "normalize_operation",
    "parse_operations_from_response",
    "safe_operation_names",
    "sanitize_selector",
]
