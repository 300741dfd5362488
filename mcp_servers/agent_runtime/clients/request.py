"""Turn a client capability plus call parameters into a concrete HTTP request."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlencode

from ..definitions.clients import AuthSpec, ClientCapabilityDefinition, ClientDefinition
from ..engine.values import stringify

BODY_METHODS = ("POST", "PUT", "PATCH")
DEFAULT_API_KEY_HEADER = "X-API-Key"

_PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")
_SINGLE_RE = re.compile(r"^\{\{([^}]+)\}\}$")
# Same unreserved set as JavaScript's encodeURIComponent.
_URI_SAFE = "!~*'()"


@dataclass(slots=True)
class PreparedRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None


def build_url(client: ClientDefinition, cap: ClientCapabilityDefinition, params: Mapping[str, Any]) -> str:
    path = cap.path
    query: list[tuple[str, str]] = []
    for p in cap.parameters:
        if p.name not in params or params[p.name] is None:
            continue
        value = stringify(params[p.name])
        if p.location == "path":
            path = path.replace("{{" + p.name + "}}", quote(value, safe=_URI_SAFE))
        elif p.location == "query":
            query.append((p.name, value))
    url = f"{client.base_url or ''}{path}"
    if query:
        url += "?" + urlencode(query, quote_via=quote, safe=_URI_SAFE)
    return url


def auth_headers(auth: AuthSpec, credentials: Mapping[str, Any]) -> dict[str, str]:
    """Exactly one auth scheme; missing credentials simply add nothing."""
    headers: dict[str, str] = {}
    if auth.type == "bearer":
        token = credentials.get("token") or credentials.get("access_token")
        if token:
            headers["Authorization"] = f"Bearer {token}"
    elif auth.type == "apikey":
        key = credentials.get("api_key") or credentials.get("apiKey")
        name = auth.header_name or credentials.get("header_name") or DEFAULT_API_KEY_HEADER
        if key:
            headers[str(name)] = str(key)
    elif auth.type == "basic":
        username = credentials.get("username")
        password = credentials.get("password")
        if username and password:
            encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
    elif auth.type == "oauth2":
        token = credentials.get("access_token")
        if token:
            headers["Authorization"] = f"Bearer {token}"
    return headers


def build_headers(
    client: ClientDefinition,
    cap: ClientCapabilityDefinition,
    params: Mapping[str, Any],
    credentials: Mapping[str, Any],
) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    headers.update(auth_headers(client.auth, credentials))
    headers.update(dict(cap.headers))
    for p in cap.parameters:
        if p.location != "header":
            continue
        value = params.get(p.name)
        if value is None:
            value = credentials.get(p.name)
        if value is not None and value != "":
            headers[p.name] = stringify(value)
    return headers


def substitute_template(template: Any, params: Mapping[str, Any]) -> Any:
    if isinstance(template, str):
        single = _SINGLE_RE.match(template)
        if single and single.group(1).strip() in params:
            return params[single.group(1).strip()]

        def _sub(m: re.Match[str]) -> str:
            name = m.group(1).strip()
            return stringify(params[name]) if name in params else m.group(0)

        return _PLACEHOLDER_RE.sub(_sub, template)
    if isinstance(template, list):
        return [substitute_template(item, params) for item in template]
    if isinstance(template, dict):
        return {k: substitute_template(v, params) for k, v in template.items()}
    return template


def build_body(cap: ClientCapabilityDefinition, params: Mapping[str, Any]) -> Any | None:
    if cap.method not in BODY_METHODS:
        return None
    if cap.body_template is not None:
        return substitute_template(cap.body_template, params)
    body = {p.name: params[p.name] for p in cap.parameters if p.location == "body" and params.get(p.name) is not None}
    return body or None


def prepare_request(
    client: ClientDefinition,
    cap: ClientCapabilityDefinition,
    params: Mapping[str, Any],
    credentials: Mapping[str, Any],
) -> PreparedRequest:
    body = build_body(cap, params)
    return PreparedRequest(
        method=cap.method,
        url=build_url(client, cap, params),
        headers=build_headers(client, cap, params, credentials),
        body=json.dumps(body, ensure_ascii=False, default=str) if body is not None else None,
    )
