"""Mapping between camelCase definition dicts and frozen dataclasses.

Every definition field declares its wire key and a parse kind in the
dataclass field metadata; `build()` walks those fields so that each node class
only has to declare its shape once.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import MISSING, field
from typing import Any

from ..engine.errors import DefinitionError

# kind -> parser(raw_value, where) ; nested kinds are registered by their modules.
_PARSERS: dict[str, Callable[[Any, str], Any]] = {}


def wire(key: str, *, kind: str = "value", default: Any = MISSING) -> Any:
    meta = {"wire": key, "kind": kind}
    if default is MISSING:
        return field(metadata=meta)
    return field(default=default, metadata=meta)


def register_kind(kind: str, parser: Callable[[Any, str], Any]) -> None:
    _PARSERS[kind] = parser


def _parse_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise DefinitionError(f"{where} must be a string")
    return value


def _parse_names(value: Any, where: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise DefinitionError(f"{where} must be a list of strings")
    return tuple(value)


def _parse_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DefinitionError(f"{where} must be a number")
    return int(value)


def _parse_bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise DefinitionError(f"{where} must be a boolean")
    return value


def _parse_mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise DefinitionError(f"{where} must be an object")
    return dict(value)


register_kind("value", lambda value, where: value)
register_kind("str", _parse_str)
register_kind("names", _parse_names)
register_kind("int", _parse_int)
register_kind("bool", _parse_bool)
register_kind("mapping", _parse_mapping)


def build(cls: type, raw: Any, *, tag: str) -> Any:
    """Instantiate `cls` from a wire dict, raising DefinitionError on bad shape."""
    if not isinstance(raw, dict):
        raise DefinitionError(f"'{tag}' must be an object")
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = f.metadata.get("wire")
        if key is None:
            continue
        where = f"'{tag}'.{key}"
        if key not in raw or raw[key] is None:
            if f.default is MISSING and f.default_factory is MISSING:
                raise DefinitionError(f"{where} is required")
            continue
        parser = _PARSERS.get(f.metadata.get("kind", "value"))
        if parser is None:
            raise DefinitionError(f"{where} has an unsupported kind")
        kwargs[f.name] = parser(raw[key], where)
    return cls(**kwargs)


def nested_fields(node: Any, kind: str) -> list[Any]:
    """Return the values of all fields of `node` that were parsed as `kind`."""
    out = []
    for f in dataclasses.fields(node):
        if f.metadata.get("kind") == kind:
            value = getattr(node, f.name)
            if value is not None:
                out.append(value)
    return out
