from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from ..engine.errors import DefinitionError
from .wire import build, register_kind, wire


class Condition:
    __slots__ = ()
    TYPE: ClassVar[str]


@dataclass(slots=True, frozen=True)
class Exists(Condition):
    TYPE: ClassVar[str] = "exists"
    target: str = wire("target", kind="str")


@dataclass(slots=True, frozen=True)
class Equals(Condition):
    TYPE: ClassVar[str] = "equals"
    left: Any = wire("left")
    right: Any = wire("right", default=None)


@dataclass(slots=True, frozen=True)
class GreaterThan(Condition):
    TYPE: ClassVar[str] = "greaterThan"
    left: Any = wire("left")
    right: Any = wire("right")


@dataclass(slots=True, frozen=True)
class LessThan(Condition):
    TYPE: ClassVar[str] = "lessThan"
    left: Any = wire("left")
    right: Any = wire("right")


@dataclass(slots=True, frozen=True)
class Contains(Condition):
    TYPE: ClassVar[str] = "contains"
    source: str = wire("source", kind="str")
    value: Any = wire("value")


@dataclass(slots=True, frozen=True)
class IsEmpty(Condition):
    TYPE: ClassVar[str] = "isEmpty"
    target: str = wire("target", kind="str")


@dataclass(slots=True, frozen=True)
class And(Condition):
    TYPE: ClassVar[str] = "and"
    conditions: tuple[Condition, ...] = wire("conditions", kind="conditions")


@dataclass(slots=True, frozen=True)
class Or(Condition):
    TYPE: ClassVar[str] = "or"
    conditions: tuple[Condition, ...] = wire("conditions", kind="conditions")


@dataclass(slots=True, frozen=True)
class Not(Condition):
    TYPE: ClassVar[str] = "not"
    condition: Condition = wire("condition", kind="condition")


CONDITION_TYPES: dict[str, type[Condition]] = {
    cls.TYPE: cls for cls in (Exists, Equals, GreaterThan, LessThan, Contains, IsEmpty, And, Or, Not)
}


def parse_condition(raw: Any, where: str = "condition") -> Condition:
    if not isinstance(raw, dict):
        raise DefinitionError(f"{where} must be an object")
    tag = raw.get("type")
    cls = CONDITION_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise DefinitionError(f"Unknown condition type: {tag}")
    return build(cls, raw, tag=tag)


def _parse_conditions(raw: Any, where: str) -> tuple[Condition, ...]:
    if not isinstance(raw, list):
        raise DefinitionError(f"{where} must be a list")
    return tuple(parse_condition(item, f"{where}[{i}]") for i, item in enumerate(raw))


register_kind("condition", parse_condition)
register_kind("conditions", _parse_conditions)
