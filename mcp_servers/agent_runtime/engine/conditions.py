from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..definitions.conditions import (
    And,
    Condition,
    Contains,
    Equals,
    Exists,
    GreaterThan,
    IsEmpty,
    LessThan,
    Not,
    Or,
)
from .errors import DefinitionError
from .values import resolve, stringify, var_name

if TYPE_CHECKING:
    from .context import ExecutionContext


def _operand(ref: Any, ctx: ExecutionContext) -> Any:
    """Variable name, `{{placeholder}}`, or literal."""
    if isinstance(ref, str):
        if "{{" in ref:
            return resolve(ref, ctx)
        name = var_name(ref)
        if ctx.has(name):
            return ctx.get(name)
    return ref


def strict_equal(a: Any, b: Any) -> bool:
    # True == 1 in Python; definitions come from JSON where they differ.
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _compare(left: Any, right: Any) -> int | None:
    ln, rn = _as_number(left), _as_number(right)
    if ln is not None and rn is not None:
        return (ln > rn) - (ln < rn)
    if isinstance(left, str) and isinstance(right, str):
        return (left > right) - (left < right)
    return None


def _exists(cond: Exists, ctx: ExecutionContext) -> bool:
    return ctx.has(var_name(cond.target))


def _equals(cond: Equals, ctx: ExecutionContext) -> bool:
    return strict_equal(resolve(cond.left, ctx), resolve(cond.right, ctx))


def _greater(cond: GreaterThan, ctx: ExecutionContext) -> bool:
    return _compare(_operand(cond.left, ctx), resolve(cond.right, ctx)) == 1


def _less(cond: LessThan, ctx: ExecutionContext) -> bool:
    return _compare(_operand(cond.left, ctx), resolve(cond.right, ctx)) == -1


def _contains(cond: Contains, ctx: ExecutionContext) -> bool:
    source = _operand(cond.source, ctx)
    needle = resolve(cond.value, ctx)
    if isinstance(source, list):
        return any(strict_equal(item, needle) for item in source)
    if isinstance(source, str):
        return stringify(needle) in source
    return False


def _is_empty(cond: IsEmpty, ctx: ExecutionContext) -> bool:
    target = ctx.get(var_name(cond.target))
    if target is None:
        return True
    if isinstance(target, (list, str, dict)):
        return len(target) == 0
    return False


def _and(cond: And, ctx: ExecutionContext) -> bool:
    return all(evaluate(c, ctx) for c in cond.conditions)


def _or(cond: Or, ctx: ExecutionContext) -> bool:
    return any(evaluate(c, ctx) for c in cond.conditions)


def _not(cond: Not, ctx: ExecutionContext) -> bool:
    return not evaluate(cond.condition, ctx)


_EVALUATORS: dict[type[Condition], Callable[[Any, ExecutionContext], bool]] = {
    Exists: _exists,
    Equals: _equals,
    GreaterThan: _greater,
    LessThan: _less,
    Contains: _contains,
    IsEmpty: _is_empty,
    And: _and,
    Or: _or,
    Not: _not,
}


def evaluate(condition: Condition, ctx: ExecutionContext) -> bool:
    fn = _EVALUATORS.get(type(condition))
    if fn is None:
        raise DefinitionError(f"Unknown condition type: {getattr(condition, 'TYPE', type(condition).__name__)}")
    return fn(condition, ctx)
