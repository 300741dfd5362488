from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from ..config import RuntimeConfig
from ..definitions.clients import ClientDefinition
from ..engine.errors import InterpreterError
from ..engine.results import ClientResult
from ..http_client import http_request
from ..redaction import redact_headers, redact_url
from .extract import transform_response
from .request import PreparedRequest, prepare_request

if TYPE_CHECKING:
    from ..policy import ExecutionPolicy

_logger = logging.getLogger("mcp.agent_runtime.clients")

# (request) -> {"status": int, "headers": dict, "body": str}
Transport = Callable[[PreparedRequest], dict[str, Any]]


def _content_type(headers: Mapping[str, Any]) -> str:
    for key, value in (headers or {}).items():
        if str(key).lower() == "content-type":
            return str(value).lower()
    return ""


class ClientEngine:
    """Executes declarative client capabilities as real HTTP requests."""

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        policy: ExecutionPolicy | None = None,
        transport: Transport | None = None,
    ) -> None:
        self.config = config
        self.policy = policy
        self._transport = transport or self._default_transport

    def _default_transport(self, req: PreparedRequest) -> dict[str, Any]:
        return http_request(req.method, req.url, self.config, headers=req.headers, body=req.body)

    def execute_capability(
        self,
        client: ClientDefinition,
        capability_name: str,
        params: Mapping[str, Any] | None,
        credentials: Mapping[str, Any] | None,
    ) -> ClientResult:
        try:
            if self.policy is not None:
                decision = self.policy.can_execute_client(client)
                if not decision.allowed:
                    _logger.info("Client %s rejected by policy: %s", client.id, decision.reason)
                    return ClientResult.fail(decision.reason or "Execution not allowed")

            cap = client.capability(capability_name)
            if cap is None:
                return ClientResult.fail(f'Capability "{capability_name}" not found in client "{client.id}"')

            params = dict(params or {})
            missing = [p.name for p in cap.parameters if p.required and params.get(p.name) is None]
            if missing:
                raise InterpreterError(f"Missing required parameters: {', '.join(missing)}")

            req = prepare_request(client, cap, params, dict(credentials or {}))
            _logger.info(
                "Client %s.%s -> %s %s headers=%s",
                client.id,
                cap.name,
                req.method,
                redact_url(req.url),
                redact_headers(req.headers),
            )
            resp = self._transport(req)
            status = int(resp.get("status") or 0)
            text = str(resp.get("body") or "")
            if not 200 <= status < 300:
                return ClientResult.fail(f"HTTP {status}: {text}", status=status)

            data: Any = text
            if "application/json" in _content_type(resp.get("headers") or {}):
                try:
                    data = json.loads(text) if text else None
                except ValueError:
                    data = text
            return ClientResult(
                success=True,
                data=transform_response(data, cap.extract, cap.field_map),
                status=status,
            )
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Client %s.%s failed: %s", client.id, capability_name, exc)
            return ClientResult.fail(str(exc))
