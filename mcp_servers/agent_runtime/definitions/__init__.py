"""Agent and client definitions: parsing, shape validation, raw-script detection."""

from __future__ import annotations

from typing import Any

from ..engine.errors import DefinitionError
from .agents import AgentDefinition, CapabilityDefinition, ModelPolicy, ParameterSpec
from .clients import AuthSpec, ClientCapabilityDefinition, ClientDefinition, ClientParameter
from .conditions import CONDITION_TYPES, Condition, parse_condition
from .steps import STEP_TYPES, Step, contains_raw_script, parse_step, parse_steps
from .transforms import TRANSFORM_TYPES, Transform, parse_transform

__all__ = [
    "AgentDefinition",
    "AuthSpec",
    "CONDITION_TYPES",
    "CapabilityDefinition",
    "ClientCapabilityDefinition",
    "ClientDefinition",
    "ClientParameter",
    "Condition",
    "ModelPolicy",
    "ParameterSpec",
    "STEP_TYPES",
    "Step",
    "TRANSFORM_TYPES",
    "Transform",
    "contains_raw_script",
    "parse_condition",
    "parse_step",
    "parse_steps",
    "parse_transform",
    "validate_agent_dict",
    "validate_client_dict",
]


def _require_text(raw: dict[str, Any], key: str, errors: list[str], prefix: str = "") -> None:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{prefix}{key} is required")


def validate_agent_dict(raw: Any) -> list[str]:
    """Return shape errors for an agent definition dict (empty list = valid)."""
    if not isinstance(raw, dict):
        return ["agent definition must be an object"]
    errors: list[str] = []
    _require_text(raw, "id", errors)
    _require_text(raw, "name", errors)
    caps = raw.get("capabilities")
    if not isinstance(caps, list):
        errors.append("capabilities must be an array")
        caps = []
    seen: set[str] = set()
    for i, cap in enumerate(caps):
        prefix = f"capabilities[{i}]."
        if not isinstance(cap, dict):
            errors.append(f"capabilities[{i}] must be an object")
            continue
        _require_text(cap, "name", errors, prefix)
        name = cap.get("name")
        if isinstance(name, str) and name:
            if name in seen:
                errors.append(f"{prefix}name '{name}' is duplicated")
            seen.add(name)
        if not isinstance(cap.get("parameters", []), list):
            errors.append(f"{prefix}parameters must be an array")
        if not isinstance(cap.get("actions"), list):
            errors.append(f"{prefix}actions must be an array")
    if errors:
        return errors

    try:
        agent = AgentDefinition.from_dict(raw)
    except DefinitionError as exc:
        return [str(exc)]
    if agent.mode == "safe" and agent.contains_raw_script:
        errors.append("safe-mode agents cannot contain executeScript steps")
    return errors


def validate_client_dict(raw: Any) -> list[str]:
    """Return shape errors for a client definition dict (empty list = valid)."""
    if not isinstance(raw, dict):
        return ["client definition must be an object"]
    errors: list[str] = []
    _require_text(raw, "id", errors)
    _require_text(raw, "name", errors)
    auth = raw.get("auth")
    if auth is not None and not isinstance(auth, dict):
        errors.append("auth must be an object")
    elif isinstance(auth, dict):
        _require_text(auth, "type", errors, "auth.")
        if not isinstance(auth.get("fields", []), list):
            errors.append("auth.fields must be an array")
    caps = raw.get("capabilities")
    if not isinstance(caps, list):
        errors.append("capabilities must be an array")
        caps = []
    for i, cap in enumerate(caps):
        prefix = f"capabilities[{i}]."
        if not isinstance(cap, dict):
            errors.append(f"capabilities[{i}] must be an object")
            continue
        _require_text(cap, "name", errors, prefix)
        _require_text(cap, "method", errors, prefix)
        _require_text(cap, "path", errors, prefix)
        if not isinstance(cap.get("parameters", []), list):
            errors.append(f"{prefix}parameters must be an array")
    if errors:
        return errors

    try:
        ClientDefinition.from_dict(raw)
    except DefinitionError as exc:
        return [str(exc)]
    return []
