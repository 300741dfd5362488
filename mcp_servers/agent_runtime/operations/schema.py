"""Static table of operations a model may propose.

This table is the trust boundary. It is not built from agent definitions or
model output, and callers can only narrow it (see OperationValidator).
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

ParamType = Literal["string", "boolean", "number", "object"]

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

_STRIP_PATTERNS = (
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"Function\s*\(", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"\{\{.*\}\}"),
    re.compile(r"\$\{.*\}"),
)

_DANGEROUS_PATTERNS = (
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"\beval\b", re.IGNORECASE),
    re.compile(r"\bFunction\s*\(", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
)

_STYLE_VALUE_RE = re.compile(r"javascript:|expression\s*\(", re.IGNORECASE)

MAX_SELECTOR_LENGTH = 1000


def sanitize_selector(selector: str) -> str:
    """Strip script-injection patterns and control characters.

    Removal repeats until nothing changes, so pieces that only join into a
    pattern after an inner removal ("javajavascript:script:") are caught too
    and sanitizing twice equals sanitizing once.
    """
    out = selector
    while True:
        before = out
        out = _CONTROL_RE.sub("", out)
        for pattern in _STRIP_PATTERNS:
            out = pattern.sub("", out)
        out = out.strip()
        if out == before:
            return out


def is_valid_selector(selector: Any) -> bool:
    if not isinstance(selector, str) or not selector:
        return False
    if any(p.search(selector) for p in _DANGEROUS_PATTERNS):
        return False
    return 0 < len(selector) < MAX_SELECTOR_LENGTH


def is_valid_styles(styles: Any) -> bool:
    if not isinstance(styles, dict):
        return False
    for key, value in styles.items():
        if not isinstance(key, str) or len(key) > 100:
            return False
        if isinstance(value, str) and _STYLE_VALUE_RE.search(value):
            return False
    return True


def is_scroll_behavior(value: Any) -> bool:
    return not value or value in ("smooth", "auto")


@dataclass(slots=True, frozen=True)
class ParamSpec:
    name: str
    type: ParamType
    required: bool = False
    validator: Callable[[Any], bool] | None = None
    sanitizer: Callable[[Any], Any] | None = None


@dataclass(slots=True, frozen=True)
class OperationSchema:
    name: str
    parameters: tuple[ParamSpec, ...] = ()


def _selector(required: bool = True) -> ParamSpec:
    return ParamSpec("selector", "string", required, is_valid_selector, sanitize_selector)


SAFE_OPERATIONS: MappingProxyType[str, OperationSchema] = MappingProxyType(
    {
        op.name: op
        for op in (
            OperationSchema("browser_remove_element", (_selector(), ParamSpec("all", "boolean"))),
            OperationSchema("browser_click_element", (_selector(),)),
            OperationSchema(
                "browser_modify_style",
                (_selector(), ParamSpec("styles", "object", True, is_valid_styles)),
            ),
            OperationSchema("browser_restore_scroll"),
            OperationSchema("browser_get_element_text", (_selector(),)),
            OperationSchema(
                "browser_scroll_to",
                (_selector(), ParamSpec("behavior", "string", False, is_scroll_behavior)),
            ),
            OperationSchema("browser_fill_input", (_selector(), ParamSpec("value", "string", True))),
            OperationSchema("browser_inspect_page", (ParamSpec("find_overlays", "boolean"),)),
        )
    }
)


def safe_operation_names() -> list[str]:
    return list(SAFE_OPERATIONS)


def type_matches(value: Any, expected: ParamType) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    return False
