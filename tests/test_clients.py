from __future__ import annotations

import base64
import json
import socket
from contextlib import closing
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Thread

import pytest

from mcp_servers.agent_runtime.clients import ClientEngine, extract_json_path, transform_response
from mcp_servers.agent_runtime.config import RuntimeConfig
from mcp_servers.agent_runtime.definitions import ClientDefinition
from mcp_servers.agent_runtime.http_client import HttpClientError, http_request

WEATHER = {
    "id": "weather",
    "name": "Weather",
    "baseUrl": "https://api.weather.test/v1",
    "auth": {"type": "apikey", "headerName": "X-API-Key", "fields": [{"name": "api_key", "label": "API key"}]},
    "capabilities": [
        {
            "name": "current",
            "method": "GET",
            "path": "/weather",
            "parameters": [{"name": "q", "location": "query", "required": True}],
            "responseTransform": {"extract": "$.current", "map": {"temp": "temp_c", "city": "location.name"}},
        },
        {
            "name": "forecast",
            "method": "GET",
            "path": "/forecast/{{city}}",
            "parameters": [
                {"name": "city", "location": "path", "required": True},
                {"name": "days", "location": "query"},
            ],
            "responseTransform": {"extract": "days[*].high"},
        },
    ],
}


class FakeTransport:
    def __init__(self, *responses: dict) -> None:
        self.responses = list(responses)
        self.requests: list = []

    def __call__(self, req):
        self.requests.append(req)
        return self.responses.pop(0)


def _json_response(payload, status: int = 200) -> dict:
    return {"status": status, "headers": {"Content-Type": "application/json; charset=utf-8"}, "body": json.dumps(payload)}


def _engine(transport, **overrides) -> ClientEngine:
    from mcp_servers.agent_runtime.policy import ExecutionPolicy

    config = RuntimeConfig(**overrides)
    return ClientEngine(config, policy=ExecutionPolicy(config), transport=transport)


# ─── engine ──────────────────────────────────────────────────────────────────


def test_apikey_query_and_response_map() -> None:
    payload = {"current": {"temp_c": 11.5, "location": {"name": "London"}, "wind": 3}}
    transport = FakeTransport(_json_response(payload))
    client = ClientDefinition.from_dict(WEATHER)

    res = _engine(transport).execute_capability(client, "current", {"q": "London"}, {"api_key": "k-123"})

    assert res.success, res.error
    assert res.data == {"temp": 11.5, "city": "London"}
    assert res.status == 200
    req = transport.requests[0]
    assert req.method == "GET"
    assert req.url == "https://api.weather.test/v1/weather?q=London"
    assert req.headers["X-API-Key"] == "k-123"
    assert req.body is None


def test_path_params_are_encoded_and_wildcards_extract() -> None:
    transport = FakeTransport(_json_response({"days": [{"high": 20}, {"high": 18}]}))
    client = ClientDefinition.from_dict(WEATHER)

    res = _engine(transport).execute_capability(client, "forecast", {"city": "São Paulo/SP", "days": 2}, {})

    assert res.success
    assert res.data == [20, 18]
    assert transport.requests[0].url == "https://api.weather.test/v1/forecast/S%C3%A3o%20Paulo%2FSP?days=2"


def test_http_error_status_is_a_failure_with_status() -> None:
    transport = FakeTransport({"status": 404, "headers": {}, "body": "not found"})
    client = ClientDefinition.from_dict(WEATHER)

    res = _engine(transport).execute_capability(client, "current", {"q": "Atlantis"}, {})

    assert not res.success
    assert res.status == 404
    assert res.error == "HTTP 404: not found"
    assert res.to_dict() == {"success": False, "error": "HTTP 404: not found", "status": 404}


def test_missing_required_parameter_and_unknown_capability() -> None:
    transport = FakeTransport()
    client = ClientDefinition.from_dict(WEATHER)
    engine = _engine(transport)

    missing = engine.execute_capability(client, "current", {}, {})
    assert not missing.success
    assert missing.error == "Missing required parameters: q"

    unknown = engine.execute_capability(client, "history", {}, {})
    assert not unknown.success
    assert unknown.error == 'Capability "history" not found in client "weather"'
    assert transport.requests == []


def test_non_json_body_is_returned_as_text() -> None:
    transport = FakeTransport({"status": 200, "headers": {"Content-Type": "text/plain"}, "body": "sunny"})
    client = ClientDefinition.from_dict(
        {"id": "t", "name": "T", "capabilities": [{"name": "get", "method": "GET", "path": "/"}]}
    )
    res = _engine(transport).execute_capability(client, "get", {}, {})
    assert res.success and res.data == "sunny"


def test_transport_failure_becomes_result() -> None:
    def boom(req):
        raise HttpClientError("connection refused")

    client = ClientDefinition.from_dict(WEATHER)
    res = _engine(boom).execute_capability(client, "current", {"q": "x"}, {})
    assert not res.success
    assert "connection refused" in res.error


def test_script_client_needs_raw_script_permission() -> None:
    raw = dict(WEATHER, containsJavaScript=True)
    client = ClientDefinition.from_dict(raw)

    blocked = _engine(FakeTransport()).execute_capability(client, "current", {"q": "x"}, {})
    assert not blocked.success
    assert "JavaScript execution is disabled" in blocked.error

    allowed = _engine(FakeTransport(_json_response({"current": {}})), allow_raw_script=True)
    assert allowed.execute_capability(client, "current", {"q": "x"}, {}).success


# ─── request building ────────────────────────────────────────────────────────


def _client(auth: dict | None = None, **cap) -> ClientDefinition:
    capability = {"name": "call", "method": "POST", "path": "/items"}
    capability.update(cap)
    raw = {"id": "c", "name": "C", "baseUrl": "https://api.test", "capabilities": [capability]}
    if auth is not None:
        raw["auth"] = auth
    return ClientDefinition.from_dict(raw)


@pytest.mark.parametrize(
    ("auth", "credentials", "expected"),
    [
        ({"type": "bearer"}, {"token": "t1"}, {"Authorization": "Bearer t1"}),
        ({"type": "bearer"}, {"access_token": "t2"}, {"Authorization": "Bearer t2"}),
        ({"type": "oauth2"}, {"access_token": "t3"}, {"Authorization": "Bearer t3"}),
        (
            {"type": "basic"},
            {"username": "ann", "password": "pw"},
            {"Authorization": "Basic " + base64.b64encode(b"ann:pw").decode()},
        ),
        ({"type": "apikey"}, {"apiKey": "k"}, {"X-API-Key": "k"}),
        ({"type": "apikey"}, {"api_key": "k", "header_name": "X-Token"}, {"X-Token": "k"}),
        ({"type": "basic"}, {"username": "ann"}, {}),
        ({"type": "none"}, {"token": "ignored"}, {}),
    ],
)
def test_auth_headers(auth: dict, credentials: dict, expected: dict) -> None:
    from mcp_servers.agent_runtime.clients.request import auth_headers
    from mcp_servers.agent_runtime.definitions import AuthSpec

    assert auth_headers(AuthSpec.from_dict(auth), credentials) == expected


def test_body_template_keeps_whole_value_types() -> None:
    from mcp_servers.agent_runtime.clients import prepare_request

    client = _client(requestTransform={"body": {"title": "{{title}}", "tags": "{{tags}}", "note": "by {{user}}"}})
    cap = client.capability("call")
    req = prepare_request(client, cap, {"title": "Hi", "tags": ["a", "b"], "user": "ann"}, {})
    assert json.loads(req.body) == {"title": "Hi", "tags": ["a", "b"], "note": "by ann"}
    assert req.headers["Content-Type"] == "application/json"


def test_body_collected_from_body_parameters() -> None:
    from mcp_servers.agent_runtime.clients import prepare_request

    client = _client(
        parameters=[
            {"name": "title", "location": "body"},
            {"name": "draft", "location": "body"},
            {"name": "page", "location": "query"},
        ]
    )
    req = prepare_request(client, client.capability("call"), {"title": "Hi", "draft": False, "page": 2}, {})
    assert json.loads(req.body) == {"title": "Hi", "draft": False}
    assert req.url == "https://api.test/items?page=2"


def test_get_never_sends_body() -> None:
    from mcp_servers.agent_runtime.clients import build_body

    client = _client(method="GET", requestTransform={"body": {"x": 1}})
    assert build_body(client.capability("call"), {}) is None


def test_header_parameter_falls_back_to_credentials() -> None:
    from mcp_servers.agent_runtime.clients import build_headers

    client = _client(
        parameters=[{"name": "X-Tenant", "location": "header"}],
        requestTransform={"headers": {"Accept": "application/json"}},
    )
    cap = client.capability("call")
    assert build_headers(client, cap, {"X-Tenant": "a"}, {"X-Tenant": "b"})["X-Tenant"] == "a"
    from_creds = build_headers(client, cap, {}, {"X-Tenant": "b"})
    assert from_creds["X-Tenant"] == "b"
    assert from_creds["Accept"] == "application/json"
    assert "X-Tenant" not in build_headers(client, cap, {}, {})


# ─── extraction ──────────────────────────────────────────────────────────────


def test_extract_json_path_forms() -> None:
    data = {"a": {"b": [{"name": "x"}, {"name": "y"}]}, "list": [10, 20]}
    assert extract_json_path(data, "$") is data
    assert extract_json_path(data, "$.a.b[1].name") == "y"
    assert extract_json_path(data, "a.b[*].name") == ["x", "y"]
    assert extract_json_path(data, "list[0]") == 10
    assert extract_json_path(data, "list[5]") is None
    assert extract_json_path(data, "a.missing.deeper") is None


def test_transform_response_maps_each_item() -> None:
    data = {"items": [{"id": 1, "info": {"n": "a"}}, {"id": 2, "info": {"n": "b"}}]}
    out = transform_response(data, "items", [("key", "id"), ("label", "info.n")])
    assert out == [{"key": 1, "label": "a"}, {"key": 2, "label": "b"}]


# ─── http_request against a local server ─────────────────────────────────────


def _start_test_server() -> tuple[str, Thread, HTTPServer]:
    class Handler(BaseHTTPRequestHandler):
        def _reply(self, status: int, payload: dict) -> None:
            body = json.dumps(payload).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:  # noqa: N802
            if self.path.startswith("/missing"):
                self._reply(404, {"error": "nope"})
                return
            self._reply(200, {"path": self.path, "key": self.headers.get("X-API-Key")})

        def do_POST(self) -> None:  # noqa: N802
            length = int(self.headers.get("Content-Length") or 0)
            received = self.rfile.read(length).decode()
            self._reply(201, {"received": json.loads(received)})

        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            return

    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    server = HTTPServer(("127.0.0.1", port), Handler)
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return f"http://127.0.0.1:{port}", thread, server


def test_http_request_roundtrip_and_error_status_as_data() -> None:
    base, thread, srv = _start_test_server()
    try:
        cfg = RuntimeConfig(allow_hosts=["127.0.0.1"])
        ok = http_request("GET", f"{base}/weather?q=London", cfg, headers={"X-API-Key": "k"})
        assert ok["status"] == 200
        assert json.loads(ok["body"]) == {"path": "/weather?q=London", "key": "k"}
        assert ok["truncated"] is False

        missing = http_request("GET", f"{base}/missing", cfg)
        assert missing["status"] == 404
        assert json.loads(missing["body"]) == {"error": "nope"}

        posted = http_request("post", f"{base}/items", cfg, body=json.dumps({"a": 1}))
        assert posted["status"] == 201
        assert json.loads(posted["body"]) == {"received": {"a": 1}}
    finally:
        srv.shutdown()
        thread.join(timeout=1)


def test_client_engine_default_transport_hits_server() -> None:
    base, thread, srv = _start_test_server()
    try:
        raw = dict(WEATHER, baseUrl=base)
        engine = ClientEngine(RuntimeConfig(allow_hosts=["127.0.0.1"]))
        res = engine.execute_capability(ClientDefinition.from_dict(raw), "current", {"q": "Paris"}, {"api_key": "s3"})
        # The echo server has no `current` key, so the extraction yields None per field.
        assert res.success
        assert res.data == {"temp": None, "city": None}
    finally:
        srv.shutdown()
        thread.join(timeout=1)


def test_http_request_enforces_allowlist_and_scheme() -> None:
    cfg = RuntimeConfig(allow_hosts=["example.com"])
    with pytest.raises(HttpClientError) as exc:
        http_request("GET", "http://127.0.0.1:9/", cfg)
    assert "allowlist" in str(exc.value)
    with pytest.raises(HttpClientError):
        http_request("GET", "file:///etc/passwd", RuntimeConfig())
    assert cfg.is_host_allowed("api.example.com")
    assert not cfg.is_host_allowed("example.com.evil.net")
