"""`{{name}}` placeholder resolution against the variable store and user config."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import ExecutionContext

_SINGLE_RE = re.compile(r"^\{\{([^}]+)\}\}$")
_EMBEDDED_RE = re.compile(r"\{\{([^}]+)\}\}")

_CONFIG_PREFIX = "config."


def stringify(value: Any) -> str:
    """Text form used when a placeholder is embedded in a larger string."""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def lookup(ref: str, ctx: ExecutionContext) -> tuple[bool, Any]:
    name = ref.strip()
    if name.startswith(_CONFIG_PREFIX):
        key = name[len(_CONFIG_PREFIX) :]
        value = ctx.user_config.get(key)
        return (value is not None), value
    if ctx.has(name):
        return True, ctx.get(name)
    return False, None


def resolve(value: Any, ctx: ExecutionContext) -> Any:
    """Resolve placeholders in `value`.

    A string that is exactly one placeholder yields the referenced value as is
    (lists and dicts included); placeholders embedded in other text are replaced
    by their string form. Unresolved placeholders stay verbatim.
    """
    if isinstance(value, str):
        single = _SINGLE_RE.match(value)
        if single:
            found, raw = lookup(single.group(1), ctx)
            return raw if found else value

        def _sub(m: re.Match[str]) -> str:
            found, raw = lookup(m.group(1), ctx)
            return stringify(raw) if found else m.group(0)

        return _EMBEDDED_RE.sub(_sub, value)
    if isinstance(value, (list, tuple)):
        return [resolve(item, ctx) for item in value]
    if isinstance(value, dict):
        return {k: resolve(v, ctx) for k, v in value.items()}
    return value


def var_name(ref: str) -> str:
    """Accept both `items` and `{{items}}` where a step names a variable."""
    m = _SINGLE_RE.match(ref.strip())
    return m.group(1).strip() if m else ref.strip()
