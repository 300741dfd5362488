"""Page scripts behind the DOM steps, and step-target resolution.

Scripts are function bodies; selectors and values reach them only as JSON
arguments (`args[i]`), never spliced into the source.
"""

from __future__ import annotations

import re
from typing import Any

from .errors import InterpreterError

_DESCRIBE = "{tagName: el.tagName, id: el.id || '', className: typeof el.className === 'string' ? el.className : ''}"

QUERY_ONE = f"const el = document.querySelector(args[0]);\nreturn el ? {_DESCRIBE} : null;"

QUERY_ALL = (
    "return Array.from(document.querySelectorAll(args[0])).map((el, idx) => "
    f"Object.assign({{__elementId: 'el_' + idx + '_' + Date.now()}}, {_DESCRIBE}));"
)

CLICK = "const el = document.querySelector(args[0]);\nif (el) { el.click(); return true; }\nreturn false;"

REMOVE_ONE = "const el = document.querySelector(args[0]);\nif (el) { el.remove(); return true; }\nreturn false;"

REMOVE_ALL = "const els = document.querySelectorAll(args[0]);\nels.forEach(el => el.remove());\nreturn els.length;"

SET_ATTRIBUTE = (
    "const el = document.querySelector(args[0]);\n"
    "if (el) { el.setAttribute(args[1], args[2]); return true; }\nreturn false;"
)

GET_ATTRIBUTE = "const el = document.querySelector(args[0]);\nreturn el ? el.getAttribute(args[1]) : null;"

GET_TEXT = "const el = document.querySelector(args[0]);\nreturn el ? el.textContent : null;"

SET_VALUE = (
    "const el = document.querySelector(args[0]);\n"
    "if (el) {\n"
    "  el.value = args[1];\n"
    "  el.dispatchEvent(new Event('input', { bubbles: true }));\n"
    "  el.dispatchEvent(new Event('change', { bubbles: true }));\n"
    "  return true;\n"
    "}\n"
    "return false;"
)

ADD_STYLE = (
    "const els = document.querySelectorAll(args[0]);\n"
    "els.forEach(el => Object.assign(el.style, args[1]));\n"
    "return els.length;"
)

EXISTS = "return document.querySelector(args[0]) !== null;"

_IDENT_SAFE = re.compile(r"[A-Za-z0-9_-]")


def css_escape(ident: str) -> str:
    out = []
    for i, ch in enumerate(ident):
        if _IDENT_SAFE.match(ch) and not (i == 0 and ch.isdigit()):
            out.append(ch)
        else:
            out.append(f"\\{ord(ch):x} ")
    return "".join(out)


def is_element_descriptor(value: Any) -> bool:
    return isinstance(value, dict) and any(value.get(k) for k in ("id", "className", "tagName"))


def descriptor_selector(desc: dict[str, Any]) -> str | None:
    """Selector for a `{tagName, id, className}` descriptor: id, then first class, then tag."""
    elem_id = desc.get("id")
    if isinstance(elem_id, str) and elem_id.strip():
        return "#" + css_escape(elem_id.strip())
    class_name = desc.get("className")
    if isinstance(class_name, str):
        classes = class_name.split()
        if classes:
            return "." + css_escape(classes[0])
    tag = desc.get("tagName")
    if isinstance(tag, str) and tag.strip():
        return tag.strip().lower()
    return None


def resolve_targets(target: Any) -> tuple[list[str], bool]:
    """Return (selectors, from_descriptors) for a resolved step target."""
    if isinstance(target, str):
        if not target.strip():
            raise InterpreterError("DOM step target is empty")
        return [target], False
    if is_element_descriptor(target):
        sel = descriptor_selector(target)
        return ([sel] if sel else []), True
    if isinstance(target, list):
        selectors = []
        for item in target:
            if isinstance(item, str) and item.strip():
                selectors.append(item)
            elif is_element_descriptor(item):
                sel = descriptor_selector(item)
                if sel:
                    selectors.append(sel)
        return selectors, True
    raise InterpreterError(f"Invalid DOM step target: {target!r}")
