from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .schema import SAFE_OPERATIONS, type_matches

_logger = logging.getLogger("mcp.agent_runtime.validator")

DEFAULT_PRIORITY = 999


@dataclass(slots=True, frozen=True)
class SafeOperation:
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    priority: float | None = None

    @property
    def effective_priority(self) -> float:
        return DEFAULT_PRIORITY if self.priority is None else self.priority

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"operation": self.operation, "parameters": dict(self.parameters)}
        if self.reason is not None:
            out["reason"] = self.reason
        if self.priority is not None:
            out["priority"] = self.priority
        return out


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    operation: SafeOperation | None = None


@dataclass(slots=True)
class BatchValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    valid_operations: list[SafeOperation] = field(default_factory=list)
    invalid_operations: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "validOperations": [op.to_dict() for op in self.valid_operations],
            "invalidOperations": list(self.invalid_operations),
        }


def _coerce_priority(raw: Any) -> tuple[float | None, str | None]:
    if raw is None:
        return None, None
    if isinstance(raw, bool):
        return None, "priority must be a number"
    if isinstance(raw, (int, float)):
        return raw, None
    if isinstance(raw, str):
        try:
            num = float(raw.strip())
        except ValueError:
            return None, "priority must be a number"
        return (int(num) if num.is_integer() else num), None
    return None, "priority must be a number"


class OperationValidator:
    """Validate and sanitize proposed operations against the static table.

    `allowed` narrows the table; names not in the table are dropped, and an
    empty or missing subset means the whole table.
    """

    def __init__(self, allowed: Iterable[str] | None = None) -> None:
        subset = {name for name in (allowed or ()) if isinstance(name, str)}
        if subset:
            self._allowed = tuple(name for name in SAFE_OPERATIONS if name in subset)
        else:
            self._allowed = tuple(SAFE_OPERATIONS)

    @property
    def allowed(self) -> tuple[str, ...]:
        return self._allowed

    def is_allowed(self, name: str) -> bool:
        return name in self._allowed

    def validate_operation(self, op: Any) -> ValidationResult:
        if not isinstance(op, dict):
            return ValidationResult(False, ["Invalid operation object"])
        name = op.get("operation")
        if not isinstance(name, str) or not name:
            return ValidationResult(False, ["Missing operation name"])
        if not self.is_allowed(name):
            allowed = ", ".join(self._allowed)
            return ValidationResult(False, [f'Operation "{name}" is not allowed. Allowed: {allowed}'])

        schema = SAFE_OPERATIONS[name]
        params = op.get("parameters")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return ValidationResult(False, ['"parameters" must be an object'])

        errors: list[str] = []
        sanitized: dict[str, Any] = {}
        for spec in schema.parameters:
            value = params.get(spec.name)
            if value is None:
                if spec.required:
                    errors.append(f"Missing required parameter: {spec.name}")
                continue
            if not type_matches(value, spec.type):
                errors.append(f'Parameter "{spec.name}" must be of type {spec.type}')
                continue
            if spec.validator is not None and not spec.validator(value):
                errors.append(f'Parameter "{spec.name}" failed validation')
                continue
            sanitized[spec.name] = spec.sanitizer(value) if spec.sanitizer is not None else value

        priority, priority_error = _coerce_priority(op.get("priority"))
        if priority_error:
            errors.append(priority_error)
        if errors:
            return ValidationResult(False, errors)

        reason = op.get("reason")
        return ValidationResult(
            True,
            [],
            SafeOperation(
                operation=name,
                parameters=sanitized,
                reason=reason if isinstance(reason, str) else None,
                priority=priority,
            ),
        )

    def validate_operations(self, batch: Any) -> BatchValidationResult:
        if not isinstance(batch, list):
            return BatchValidationResult(False, ["Operations must be an array"])

        valid: list[SafeOperation] = []
        invalid: list[dict[str, Any]] = []
        for op in batch:
            result = self.validate_operation(op)
            if result.valid and result.operation is not None:
                valid.append(result.operation)
            else:
                invalid.append({"operation": op, "errors": result.errors})

        # sorted() is stable: equal priorities keep their input order.
        valid = sorted(valid, key=lambda o: o.effective_priority)
        if invalid:
            _logger.info("Rejected %d of %d proposed operations", len(invalid), len(batch))
        return BatchValidationResult(
            valid=not invalid,
            errors=[err for item in invalid for err in item["errors"]],
            valid_operations=valid,
            invalid_operations=invalid,
        )
