"""Recover a list of proposed operations from free-form model output.

Strategies, first one that yields operations wins:
1. unwrap a code fence that encloses the whole response;
2. parse the whole text as JSON (array, {"operations": [...]}, or one operation);
3. parse the greedy first-`[` to last-`]` span as an array;
4. scan for `{"operation": "..."}` objects, finding each extent by brace depth.
Fenced blocks inside prose are tried last, one at a time.
Every recovered operation is then normalized (flattened parameters hoisted).
"""

from __future__ import annotations

import json
import re
from typing import Any

_WHOLE_FENCE_RE = re.compile(r"\A```(?:json)?\s*([\s\S]*?)\s*```\Z")
_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_OBJECT_START_RE = re.compile(r'\{[^{}]*"operation"\s*:\s*"[^"]+"')

META_FIELDS = ("operation", "parameters", "reason", "priority")


def normalize_operation(op: Any) -> Any:
    """Hoist flattened keys into `parameters` when the nesting was omitted."""
    if not isinstance(op, dict) or not op.get("operation"):
        return op
    params = op.get("parameters")
    if isinstance(params, dict) and params:
        return op
    extracted = {k: v for k, v in op.items() if k not in META_FIELDS}
    return {
        "operation": op["operation"],
        "parameters": extracted if extracted else (params if isinstance(params, dict) else {}),
        "reason": op.get("reason"),
        "priority": op.get("priority"),
    }


def _candidates(text: str) -> list[str]:
    whole = _WHOLE_FENCE_RE.match(text)
    if whole:
        return [whole.group(1).strip()]
    return [text] + [m.group(1).strip() for m in _FENCE_RE.finditer(text)]


def _from_whole(text: str) -> list[Any]:
    try:
        parsed = json.loads(text)
    except ValueError:
        return []
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        if isinstance(parsed.get("operations"), list):
            return parsed["operations"]
        if parsed.get("operation"):
            return [parsed]
    return []


def _from_array_span(text: str) -> list[Any]:
    m = _ARRAY_RE.search(text)
    if not m:
        return []
    try:
        parsed = json.loads(m.group(0))
    except ValueError:
        return []
    return parsed if isinstance(parsed, list) else []


def _object_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _from_objects(text: str) -> list[Any]:
    out: list[Any] = []
    pos = 0
    while True:
        m = _OBJECT_START_RE.search(text, pos)
        if not m:
            return out
        start = m.start()
        end = _object_end(text, start)
        if end is None:
            pos = start + 1
            continue
        try:
            op = json.loads(text[start:end])
        except ValueError:
            pos = start + 1
            continue
        if isinstance(op, dict) and op.get("operation"):
            out.append(op)
            pos = end
        else:
            pos = start + 1


def parse_operations_from_response(text: str) -> list[Any]:
    if not isinstance(text, str):
        return []
    for candidate in _candidates(text.strip()):
        for strategy in (_from_whole, _from_array_span, _from_objects):
            operations = strategy(candidate)
            if operations:
                return [normalize_operation(op) for op in operations]
    return []
