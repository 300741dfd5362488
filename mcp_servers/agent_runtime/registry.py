"""Registry of agent and client definitions, and the two invocation entry points.

The registry is an explicit instance; build one per server (or per test) with
`create_default_registry` or by passing collaborators directly.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from .clients import ClientEngine, Transport
from .collaborators import DomBridge, ModelClient, PlatformServices
from .config import RuntimeConfig
from .definitions import AgentDefinition, ClientDefinition
from .engine.errors import DefinitionError
from .engine.interpreter import AgentInterpreter
from .engine.results import CapabilityResult, ClientResult
from .policy import ExecutionPolicy
from .storage import DefinitionStore

_logger = logging.getLogger("mcp.agent_runtime.registry")


class CapabilityRegistry:
    def __init__(
        self,
        config: RuntimeConfig,
        *,
        bridge: DomBridge,
        model: ModelClient | None = None,
        platform: PlatformServices | None = None,
        policy: ExecutionPolicy | None = None,
        transport: Transport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.platform = platform
        self.policy = policy or ExecutionPolicy(config)
        self._lock = threading.RLock()
        self._agents: dict[str, AgentDefinition] = {}
        self._clients: dict[str, ClientDefinition] = {}
        self.client_engine = ClientEngine(config, policy=self.policy, transport=transport)
        self.interpreter = AgentInterpreter(
            config,
            bridge=bridge,
            model=model,
            platform=platform,
            policy=self.policy,
            client_caller=self.execute_client_capability,
            sleep=sleep,
            clock=clock,
        )

    # Agents

    def register_agent(self, agent: AgentDefinition | dict[str, Any]) -> AgentDefinition:
        if isinstance(agent, dict):
            agent = AgentDefinition.from_dict(agent)
        with self._lock:
            self._agents[agent.id] = agent
        _logger.info("Registered agent %s (%d capabilities)", agent.id, len(agent.capabilities))
        return agent

    def get_agent(self, agent_id: str) -> AgentDefinition | None:
        with self._lock:
            return self._agents.get(agent_id)

    def list_agents(self) -> list[AgentDefinition]:
        with self._lock:
            return list(self._agents.values())

    def remove_agent(self, agent_id: str) -> bool:
        with self._lock:
            return self._agents.pop(agent_id, None) is not None

    # Clients

    def register_client(self, client: ClientDefinition | dict[str, Any]) -> ClientDefinition:
        if isinstance(client, dict):
            client = ClientDefinition.from_dict(client)
        with self._lock:
            self._clients[client.id] = client
        _logger.info("Registered client %s (%d capabilities)", client.id, len(client.capabilities))
        return client

    def get_client(self, client_id: str) -> ClientDefinition | None:
        with self._lock:
            return self._clients.get(client_id)

    def list_clients(self) -> list[ClientDefinition]:
        with self._lock:
            return list(self._clients.values())

    def remove_client(self, client_id: str) -> bool:
        with self._lock:
            return self._clients.pop(client_id, None) is not None

    # Invocation

    def execute_agent_capability(
        self,
        agent_id: str,
        capability_name: str,
        params: dict[str, Any] | None = None,
        user_config: Mapping[str, Any] | None = None,
    ) -> CapabilityResult:
        agent = self.get_agent(agent_id)
        if agent is None:
            return CapabilityResult.fail(f'Agent "{agent_id}" not found')
        return self.interpreter.execute_capability(agent, capability_name, params, user_config)

    def execute_client_capability(
        self,
        client_id: str,
        capability_name: str,
        params: dict[str, Any] | None = None,
        credentials: Mapping[str, Any] | None = None,
    ) -> ClientResult:
        client = self.get_client(client_id)
        if client is None:
            return ClientResult.fail(f'Client "{client_id}" not found')
        if credentials is None and self.platform is not None:
            try:
                credentials = self.platform.credentials_for(client_id)
            except Exception as exc:  # noqa: BLE001
                _logger.warning("Credential lookup for %s failed: %s", client_id, exc)
                credentials = {}
        return self.client_engine.execute_capability(client, capability_name, params, credentials)

    # Lifecycle

    def load_from_store(self, store: DefinitionStore) -> dict[str, int]:
        """Register every stored definition; broken records are logged and skipped."""
        loaded = {"agents": 0, "clients": 0, "skipped": 0}
        for raw in store.list_agents():
            try:
                self.register_agent(raw)
                loaded["agents"] += 1
            except DefinitionError as exc:
                _logger.warning("Skipping stored agent %s: %s", raw.get("id"), exc)
                loaded["skipped"] += 1
        for raw in store.list_clients():
            try:
                self.register_client(raw)
                loaded["clients"] += 1
            except DefinitionError as exc:
                _logger.warning("Skipping stored client %s: %s", raw.get("id"), exc)
                loaded["skipped"] += 1
        return loaded

    def metadata(self) -> dict[str, Any]:
        return {
            "agents": [a.metadata() for a in self.list_agents()],
            "clients": [c.metadata() for c in self.list_clients()],
            "processes": self.interpreter.processes.snapshot(),
        }

    def stop_all_processes(self) -> list[str]:
        return self.interpreter.stop_all_processes()


def create_default_registry(config: RuntimeConfig | None = None, *, load: bool = True) -> CapabilityRegistry:
    """Wire the default adapters (CDP bridge, OpenAI model, local platform)."""
    from .bridge_cdp import CdpDomBridge
    from .model_openai import OpenAIModelClient
    from .platform_local import LocalPlatform
    from .storage import JsonKeyValueStore

    config = config or RuntimeConfig.from_env()
    bridge = CdpDomBridge(config)
    platform = LocalPlatform(
        JsonKeyValueStore(config.storage_path),
        tabs=bridge,
        credentials_path=config.credentials_path,
    )
    model = OpenAIModelClient(config) if config.model_assisted_enabled else None
    registry = CapabilityRegistry(config, bridge=bridge, model=model, platform=platform)
    if load:
        counts = registry.load_from_store(DefinitionStore(config.definitions_dir))
        _logger.info("Loaded definitions: %s", counts)
    return registry
