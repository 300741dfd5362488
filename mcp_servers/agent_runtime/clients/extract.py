"""Simplified JSONPath: `$`, `$.a.b`, `a[0]`, `items[*].name`, plus flat field maps."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

_INDEX_RE = re.compile(r"^(.*)\[(\d+)\]$")
_WILDCARD_RE = re.compile(r"^(.*)\[\*\]$")
_SPLIT_RE = re.compile(r"\.(?![^\[]*\])")


def _field(data: Any, name: str) -> Any:
    if name == "":
        return data
    if isinstance(data, dict):
        return data.get(name)
    if isinstance(data, list) and name.isdigit():
        idx = int(name)
        return data[idx] if idx < len(data) else None
    return None


def _walk(data: Any, parts: list[str]) -> Any:
    result = data
    for i, part in enumerate(parts):
        if result is None:
            return None
        wildcard = _WILDCARD_RE.match(part)
        if wildcard:
            items = _field(result, wildcard.group(1))
            if not isinstance(items, list):
                return None
            rest = parts[i + 1 :]
            return [_walk(item, rest) for item in items] if rest else items
        indexed = _INDEX_RE.match(part)
        if indexed:
            items = _field(result, indexed.group(1))
            idx = int(indexed.group(2))
            result = items[idx] if isinstance(items, list) and idx < len(items) else None
            continue
        result = _field(result, part)
    return result


def extract_json_path(data: Any, path: str) -> Any:
    if path in ("$", ""):
        return data
    clean = path[2:] if path.startswith("$.") else path
    return _walk(data, _SPLIT_RE.split(clean))


def map_fields(data: Any, mapping: Iterable[tuple[str, str]]) -> Any:
    pairs = list(mapping)
    if isinstance(data, list):
        return [map_fields(item, pairs) for item in data]
    return {target: extract_json_path(data, source) for target, source in pairs}


def transform_response(data: Any, extract: str | None, field_map: Iterable[tuple[str, str]]) -> Any:
    result = data
    if extract:
        result = extract_json_path(result, extract)
    pairs = list(field_map)
    if pairs:
        result = map_fields(result, pairs)
    return result
