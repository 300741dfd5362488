"""Redaction for log lines.

Credentials reach the runtime through client auth headers, query strings and
tool arguments. Every log line that may carry them goes through one of these
helpers first.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

MASK = "<redacted>"

# Matched anywhere in the lower-cased key.
_SENSITIVE_RE = re.compile(
    r"token|secret|passw(?:or)?d|pwd|authorization|cookie|session|jwt|bearer|api[-_]?key|appid|credential"
)
# Matched only as the whole key: "author" is fine, "auth" is not.
_SENSITIVE_WHOLE = frozenset({"auth", "key"})
_TEMPLATE_RE = re.compile(r"\{\{\s*[\w.-]+\s*\}\}")
_MAX_DEPTH = 8


def is_sensitive_key(key: str) -> bool:
    name = str(key or "").strip().lower()
    if not name:
        return False
    return name in _SENSITIVE_WHOLE or _SENSITIVE_RE.search(name) is not None


def _mask(value: Any) -> str:
    if isinstance(value, str):
        return f"<redacted str len={len(value)}>"
    if isinstance(value, (bytes, bytearray)):
        return f"<redacted bytes len={len(value)}>"
    if isinstance(value, dict):
        return f"<redacted dict keys={len(value)}>"
    if isinstance(value, (list, tuple, set)):
        return f"<redacted list len={len(value)}>"
    return MASK


def _scrub_query(query: str) -> str | None:
    """Masked query string, or None when nothing needed masking."""
    pairs = parse_qsl(query, keep_blank_values=True)
    hits = [bool(v) and is_sensitive_key(k) and not _TEMPLATE_RE.search(v) for k, v in pairs]
    if not any(hits):
        return None
    return urlencode([(k, MASK if hit else v) for (k, v), hit in zip(pairs, hits)])


def redact_url(url: str) -> str:
    """Mask credential-looking query and fragment values and drop userinfo.

    Ordinary parameters (`q=London`) and `{{placeholder}}` values are kept.
    The URL comes back unchanged when there is nothing to mask.
    """
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    netloc = parts.netloc.rpartition("@")[2]
    query = _scrub_query(parts.query) if parts.query else None
    fragment = _scrub_query(parts.fragment) if "=" in parts.fragment else None
    if netloc == parts.netloc and query is None and fragment is None:
        return url
    return urlunsplit(
        (
            parts.scheme,
            netloc,
            parts.path,
            parts.query if query is None else query,
            parts.fragment if fragment is None else fragment,
        )
    )


def redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
    return {k: _mask(v) if is_sensitive_key(str(k)) else v for k, v in (headers or {}).items()}


def redact_mapping(value: Any, *, depth: int = 0) -> Any:
    """Recursively mask values under sensitive keys; URL strings are scrubbed too."""
    if depth > _MAX_DEPTH:
        return "<truncated>"
    if isinstance(value, dict):
        return {
            k: _mask(v) if is_sensitive_key(str(k)) else redact_mapping(v, depth=depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_mapping(v, depth=depth + 1) for v in value]
    if isinstance(value, str) and value.startswith(("http://", "https://")):
        return redact_url(value)
    return value
