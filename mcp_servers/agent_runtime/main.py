"""
MCP server exposing registered agent and client capabilities over stdio.

JSON-RPC 2.0, one message per line. Tools:
- list_capabilities: metadata of every registered agent and client
- run_agent_capability / run_client_capability: invoke one capability
- validate_operations: parse a model response and check it against the whitelist
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

from .operations import OperationValidator, parse_operations_from_response
from .redaction import redact_mapping
from .registry import CapabilityRegistry, create_default_registry

SUPPORTED_PROTOCOL_VERSIONS = ["0.1.0", "2025-06-18", "2024-11-05"]
DEFAULT_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[1]

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("mcp.agent_runtime")


class ToolError(Exception):
    pass


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "list_capabilities",
        "description": "List registered agents and clients with their capabilities and parameters.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "run_agent_capability",
        "description": "Run one capability of a registered agent.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "agentId": {"type": "string"},
                "capability": {"type": "string"},
                "params": {"type": "object"},
                "config": {"type": "object", "description": "User config; tabId selects the page."},
            },
            "required": ["agentId", "capability"],
        },
    },
    {
        "name": "run_client_capability",
        "description": "Run one capability of a registered HTTP client.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "clientId": {"type": "string"},
                "capability": {"type": "string"},
                "params": {"type": "object"},
            },
            "required": ["clientId", "capability"],
        },
    },
    {
        "name": "validate_operations",
        "description": "Parse a model response into operations and validate them against the safe-operation whitelist.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "response": {"type": "string"},
                "operations": {"type": "array"},
                "allowedOperations": {"type": "array", "items": {"type": "string"}},
            },
        },
    },
]


def _write_message(payload: dict[str, Any]) -> None:
    """Write one JSON-RPC frame to stdout."""
    frame = json.dumps(payload, ensure_ascii=False, default=str) + "\n"
    sys.stdout.buffer.write(frame.encode())
    sys.stdout.buffer.flush()


def _reply(request_id: Any, result: dict[str, Any]) -> None:
    _write_message({"jsonrpc": "2.0", "id": request_id, "result": result})


def _fail(request_id: Any, code: int, message: str) -> None:
    _write_message({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})


def _read_message() -> dict[str, Any] | None:
    """Next JSON-RPC frame from stdin; blank and malformed lines are skipped. None at EOF."""
    for raw in iter(sys.stdin.buffer.readline, b""):
        raw = raw.strip()
        if not raw:
            continue
        try:
            msg = json.loads(raw.decode())
        except ValueError:
            logger.warning("Dropping malformed frame")
            continue
        if os.environ.get("MCP_TRACE"):
            logger.info("recv %s", redact_mapping(msg))
        return msg
    return None


def _object_arg(arguments: dict[str, Any], key: str) -> dict[str, Any]:
    value = arguments.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ToolError(f"{key} must be an object")
    return value


def _text_arg(arguments: dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolError(f"{key} is required")
    return value


class McpServer:
    def __init__(self, registry: CapabilityRegistry | None = None) -> None:
        self.registry = registry if registry is not None else create_default_registry()
        self._tools = {
            "list_capabilities": self._tool_list_capabilities,
            "run_agent_capability": self._tool_run_agent,
            "run_client_capability": self._tool_run_client,
            "validate_operations": self._tool_validate_operations,
        }
        self._methods = {
            "initialize": self.handle_initialize,
            "tools/list": self.handle_list_tools,
            "list_tools": self.handle_list_tools,
            "tools/call": self.handle_call_tool,
            "call_tool": self.handle_call_tool,
            "ping": lambda request_id, params: _reply(request_id, {}),
        }

    # Protocol

    def handle_initialize(self, request_id: Any, params: dict[str, Any]) -> None:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else DEFAULT_PROTOCOL_VERSION
        _reply(
            request_id,
            {
                "protocolVersion": version,
                "serverInfo": {"name": "agent-runtime", "version": "0.1.0"},
                "capabilities": {"tools": {"listChanged": False}},
                "instructions": "",
            },
        )

    def handle_list_tools(self, request_id: Any, params: dict[str, Any]) -> None:
        _reply(request_id, {"tools": TOOL_DEFINITIONS})

    def handle_call_tool(self, request_id: Any, params: dict[str, Any]) -> None:
        name = str(params.get("name") or "")
        arguments = params.get("arguments")
        if not isinstance(arguments, dict):
            arguments = {}
        logger.info("tool=%s args=%s", name, redact_mapping(arguments))
        try:
            tool = self._tools.get(name)
            if tool is None:
                raise ToolError(f"Unknown tool {name}")
            result = tool(arguments)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Tool %s failed", name)
            _fail(request_id, -32001, str(exc))
            return
        text = json.dumps(result, ensure_ascii=False, default=str)
        _reply(
            request_id,
            {
                "content": [{"type": "text", "text": text}],
                "isError": isinstance(result, dict) and result.get("success") is False,
            },
        )

    def dispatch(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if not method or method.startswith("notifications/"):
            return
        params = message.get("params")
        handler = self._methods.get(method)
        if handler is None:
            _fail(message.get("id"), -32601, f"Method {method} not found")
            return
        handler(message.get("id"), params if isinstance(params, dict) else {})

    # Tools

    def _tool_list_capabilities(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return self.registry.metadata()

    def _tool_run_agent(self, arguments: dict[str, Any]) -> dict[str, Any]:
        result = self.registry.execute_agent_capability(
            _text_arg(arguments, "agentId"),
            _text_arg(arguments, "capability"),
            _object_arg(arguments, "params"),
            _object_arg(arguments, "config"),
        )
        return result.to_dict()

    def _tool_run_client(self, arguments: dict[str, Any]) -> dict[str, Any]:
        result = self.registry.execute_client_capability(
            _text_arg(arguments, "clientId"),
            _text_arg(arguments, "capability"),
            _object_arg(arguments, "params"),
        )
        return result.to_dict()

    def _tool_validate_operations(self, arguments: dict[str, Any]) -> dict[str, Any]:
        operations = arguments.get("operations")
        if operations is None:
            response = arguments.get("response")
            if not isinstance(response, str):
                raise ToolError("response or operations is required")
            operations = parse_operations_from_response(response)
        allowed = arguments.get("allowedOperations")
        validator = OperationValidator(allowed if isinstance(allowed, list) else None)
        report = validator.validate_operations(operations).to_dict()
        report["allowedOperations"] = list(validator.allowed)
        return report

    def shutdown(self) -> None:
        stopped = self.registry.stop_all_processes()
        if stopped:
            logger.info("Stopped processes: %s", ", ".join(stopped))


def main() -> None:
    """Serve MCP over stdio until stdin closes."""
    server = McpServer()
    try:
        for message in iter(_read_message, None):
            server.dispatch(message)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
