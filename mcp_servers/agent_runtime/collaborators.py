"""Contracts of the replaceable collaborators the execution core talks to.

Default adapters: bridge_cdp.CdpDomBridge, model_openai.OpenAIModelClient,
platform_local.LocalPlatform. Tests use hand-written fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


class BridgeError(Exception):
    pass


@dataclass(slots=True)
class NamedCallResult:
    success: bool
    data: Any | None = None
    error: str | None = None


@dataclass(slots=True)
class ModelRequest:
    prompt: str
    system_prompt: str | None = None
    max_tokens: int = 2048
    temperature: float | None = None


@dataclass(slots=True)
class ModelResponse:
    content: str


class DomBridge(Protocol):
    def run(
        self,
        script: str,
        args: list[Any] | None = None,
        timeout_ms: int | None = None,
        target_session: str | None = None,
    ) -> Any:
        """Run `script` as a page-level function body; `args` are available as `args[i]`."""

    def call_named_capability(
        self, name: str, params: dict[str, Any], target_session: str | None = None
    ) -> NamedCallResult:
        """Run one fixed, whitelisted page capability (never arbitrary script) on the given tab."""


class ModelClient(Protocol):
    def generate(self, request: ModelRequest, use_own_credentials: bool = False) -> ModelResponse: ...


class PlatformServices(Protocol):
    def storage_get(self, keys: str | list[str] | None) -> dict[str, Any]: ...

    def storage_set(self, items: dict[str, Any]) -> None: ...

    def create_tab(self, url: str) -> Any: ...

    def notify(self, title: str, message: str) -> None: ...

    def credentials_for(self, client_id: str) -> dict[str, Any]: ...
