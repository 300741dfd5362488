from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from ..definitions.transforms import (
    Join,
    JsonParse,
    JsonStringify,
    MapField,
    ParseFloat,
    ParseInt,
    Split,
    ToLowerCase,
    ToUpperCase,
    Transform,
    Trim,
)
from .errors import DefinitionError, ParseError
from .values import stringify

# Leading-prefix parsing: "12px" -> 12, "3.5em" -> 3.5.
_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _parse_int(value: Any, _t: ParseInt) -> int:
    m = _INT_RE.match(stringify(value))
    if not m:
        raise ParseError(f"parseInt: cannot parse {stringify(value)!r} as an integer")
    return int(m.group(1))


def _parse_float(value: Any, _t: ParseFloat) -> float:
    m = _FLOAT_RE.match(stringify(value))
    if not m:
        raise ParseError(f"parseFloat: cannot parse {stringify(value)!r} as a number")
    return float(m.group(1))


def _json_parse(value: Any, _t: JsonParse) -> Any:
    try:
        return json.loads(value if isinstance(value, str) else stringify(value))
    except json.JSONDecodeError as exc:
        raise ParseError(f"jsonParse: {exc}") from exc


def _split(value: Any, t: Split) -> list[str]:
    text = stringify(value)
    if t.delimiter == "":
        return list(text)
    return text.split(t.delimiter)


def _join(value: Any, t: Join) -> Any:
    if isinstance(value, list):
        return t.delimiter.join("" if v is None else stringify(v) for v in value)
    return value


def _map_field(value: Any, t: MapField) -> Any:
    if isinstance(value, list):
        return [item.get(t.field) if isinstance(item, dict) else None for item in value]
    return value


_APPLIERS: dict[type[Transform], Callable[[Any, Any], Any]] = {
    ToLowerCase: lambda value, _t: stringify(value).lower(),
    ToUpperCase: lambda value, _t: stringify(value).upper(),
    Trim: lambda value, _t: stringify(value).strip(),
    Split: _split,
    Join: _join,
    ParseInt: _parse_int,
    ParseFloat: _parse_float,
    JsonParse: _json_parse,
    JsonStringify: lambda value, _t: json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str),
    MapField: _map_field,
}


def apply(value: Any, transform: Transform) -> Any:
    fn = _APPLIERS.get(type(transform))
    if fn is None:
        raise DefinitionError(f"Unknown transform type: {getattr(transform, 'TYPE', type(transform).__name__)}")
    return fn(value, transform)
