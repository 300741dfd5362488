from __future__ import annotations

import ssl
import urllib.parse
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, HTTPSHandler, Request, build_opener

from .config import RuntimeConfig

_BODY_METHODS = {"POST", "PUT", "PATCH"}


class HttpClientError(Exception):
    pass


class _SafeRedirectHandler(HTTPRedirectHandler):
    def __init__(self, config: RuntimeConfig) -> None:
        super().__init__()
        self._config = config

    def redirect_request(self, req, fp, code, msg, headers, newurl):  # noqa: ANN001
        # urllib may pass relative URLs here; normalize against the previous URL.
        absolute = urllib.parse.urljoin(req.full_url, str(newurl))
        parsed = urllib.parse.urlparse(absolute)
        if parsed.scheme not in ("http", "https"):
            raise HttpClientError("Only http/https are supported (redirect)")
        if not self._config.is_host_allowed(parsed.hostname or ""):
            raise HttpClientError(f"Host {parsed.hostname} is not in allowlist (redirect)")
        return super().redirect_request(req, fp, code, msg, headers, absolute)


def check_url(url: str, config: RuntimeConfig) -> None:
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    if not config.is_host_allowed(parsed.hostname or ""):
        raise HttpClientError(f"Host {parsed.hostname} is not in allowlist")


def _read_limited(resp: Any, max_bytes: int) -> tuple[str, bool]:
    body = resp.read(max_bytes + 1)
    truncated = len(body) > max_bytes
    if truncated:
        body = body[:max_bytes]
    return body.decode(errors="replace"), truncated


def http_request(
    method: str,
    url: str,
    config: RuntimeConfig,
    *,
    headers: dict[str, str] | None = None,
    body: str | None = None,
) -> dict[str, Any]:
    """Perform one outbound request.

    HTTP error statuses are returned as data ({status, headers, body}); only
    transport failures (refused connection, timeout, disallowed host) raise
    HttpClientError.
    """
    method = (method or "GET").upper()
    check_url(url, config)

    req_headers = {"User-Agent": "mcp-agent-runtime/1.0"}
    req_headers.update(headers or {})
    data = body.encode("utf-8") if body is not None and method in _BODY_METHODS else None
    req = Request(url, data=data, headers=req_headers, method=method)

    ctx = ssl.create_default_context()
    opener = build_opener(_SafeRedirectHandler(config), HTTPSHandler(context=ctx))
    try:
        with opener.open(req, timeout=config.http_timeout) as resp:
            text, truncated = _read_limited(resp, config.http_max_bytes)
            return {
                "status": resp.status,
                "headers": dict(resp.headers),
                "body": text,
                "truncated": truncated,
            }
    except HTTPError as exc:
        text, truncated = _read_limited(exc, config.http_max_bytes)
        return {
            "status": exc.code,
            "headers": dict(exc.headers or {}),
            "body": text,
            "truncated": truncated,
        }
    except (TimeoutError, URLError) as exc:
        raise HttpClientError(str(exc)) from exc
