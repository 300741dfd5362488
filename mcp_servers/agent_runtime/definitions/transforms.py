from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from ..engine.errors import DefinitionError
from .wire import build, register_kind, wire


class Transform:
    __slots__ = ()
    TYPE: ClassVar[str]


@dataclass(slots=True, frozen=True)
class ToLowerCase(Transform):
    TYPE: ClassVar[str] = "toLowerCase"


@dataclass(slots=True, frozen=True)
class ToUpperCase(Transform):
    TYPE: ClassVar[str] = "toUpperCase"


@dataclass(slots=True, frozen=True)
class Trim(Transform):
    TYPE: ClassVar[str] = "trim"


@dataclass(slots=True, frozen=True)
class Split(Transform):
    TYPE: ClassVar[str] = "split"
    delimiter: str = wire("delimiter", kind="str")


@dataclass(slots=True, frozen=True)
class Join(Transform):
    TYPE: ClassVar[str] = "join"
    delimiter: str = wire("delimiter", kind="str")


@dataclass(slots=True, frozen=True)
class ParseInt(Transform):
    TYPE: ClassVar[str] = "parseInt"


@dataclass(slots=True, frozen=True)
class ParseFloat(Transform):
    TYPE: ClassVar[str] = "parseFloat"


@dataclass(slots=True, frozen=True)
class JsonParse(Transform):
    TYPE: ClassVar[str] = "jsonParse"


@dataclass(slots=True, frozen=True)
class JsonStringify(Transform):
    TYPE: ClassVar[str] = "jsonStringify"


@dataclass(slots=True, frozen=True)
class MapField(Transform):
    TYPE: ClassVar[str] = "map"
    field: str = wire("field", kind="str")


TRANSFORM_TYPES: dict[str, type[Transform]] = {
    cls.TYPE: cls
    for cls in (ToLowerCase, ToUpperCase, Trim, Split, Join, ParseInt, ParseFloat, JsonParse, JsonStringify, MapField)
}


def parse_transform(raw: Any, where: str = "transform") -> Transform:
    if not isinstance(raw, dict):
        raise DefinitionError(f"{where} must be an object")
    tag = raw.get("type")
    cls = TRANSFORM_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise DefinitionError(f"Unknown transform type: {tag}")
    return build(cls, raw, tag=tag)


register_kind("transform", parse_transform)
