from __future__ import annotations

from typing import Any

import pytest

from mcp_servers.agent_runtime.collaborators import ModelResponse, NamedCallResult
from mcp_servers.agent_runtime.config import RuntimeConfig


class FakeBridge:
    """Records every call; `run_handler(script, args)` decides what `run` returns."""

    def __init__(self) -> None:
        self.runs: list[tuple[str, list[Any], int | None, str | None]] = []
        self.named: list[tuple[str, dict[str, Any]]] = []
        self.named_sessions: list[str | None] = []
        self.run_handler: Any = None
        self.named_results: dict[str, Any] = {}

    def run(self, script: str, args: list[Any] | None = None, timeout_ms: int | None = None, target_session: str | None = None) -> Any:
        self.runs.append((script, list(args or []), timeout_ms, target_session))
        if self.run_handler is not None:
            return self.run_handler(script, list(args or []))
        return None

    def call_named_capability(self, name: str, params: dict[str, Any], target_session: str | None = None) -> NamedCallResult:
        self.named.append((name, dict(params)))
        self.named_sessions.append(target_session)
        res = self.named_results.get(name)
        if callable(res):
            return res(params)
        return res or NamedCallResult(True, {"ok": True})


class FakeModel:
    def __init__(self, *responses: str) -> None:
        self.responses = list(responses)
        self.requests: list[Any] = []
        self.own_flags: list[bool] = []

    def generate(self, request: Any, use_own_credentials: bool = False) -> ModelResponse:
        self.requests.append(request)
        self.own_flags.append(use_own_credentials)
        return ModelResponse(self.responses.pop(0) if self.responses else "")


class FakePlatform:
    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.tabs: list[str] = []
        self.notifications: list[tuple[str, str]] = []
        self.fail_notify = False
        self.credentials: dict[str, dict[str, Any]] = {}

    def storage_get(self, keys: Any) -> dict[str, Any]:
        if keys is None:
            return dict(self.store)
        if isinstance(keys, str):
            keys = [keys]
        return {k: self.store[k] for k in keys if k in self.store}

    def storage_set(self, items: dict[str, Any]) -> None:
        self.store.update(items)

    def create_tab(self, url: str) -> dict[str, Any]:
        self.tabs.append(url)
        return {"id": f"tab-{len(self.tabs)}", "url": url}

    def notify(self, title: str, message: str) -> None:
        if self.fail_notify:
            raise RuntimeError("notifications blocked")
        self.notifications.append((title, message))

    def credentials_for(self, client_id: str) -> dict[str, Any]:
        return dict(self.credentials.get(client_id, {}))


class FakeClock:
    """Monotonic clock that only moves when `sleep` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_interpreter(bridge: FakeBridge, platform: FakePlatform, clock: FakeClock):
    from mcp_servers.agent_runtime.engine.interpreter import AgentInterpreter

    created = []

    def _make(*, model: Any = None, client_caller: Any = None, **overrides: Any) -> AgentInterpreter:
        config = RuntimeConfig(**overrides)
        interp = AgentInterpreter(
            config,
            bridge=bridge,
            model=model,
            platform=platform,
            client_caller=client_caller,
            sleep=clock.sleep,
            clock=clock,
        )
        created.append(interp)
        return interp

    yield _make
    for interp in created:
        interp.stop_all_processes()


@pytest.fixture
def agent_dict():
    def _agent(actions: list[dict[str, Any]], *, mode: str = "unrestricted", parameters: list | None = None, **extra: Any) -> dict[str, Any]:
        raw = {
            "id": "test-agent",
            "name": "Test Agent",
            "executionMode": mode,
            "capabilities": [{"name": "run", "parameters": parameters or [], "actions": actions}],
        }
        raw.update(extra)
        return raw

    return _agent


@pytest.fixture
def fake_model():
    return FakeModel
