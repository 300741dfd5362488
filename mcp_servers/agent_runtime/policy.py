"""Execution policy: which agent and client definitions may run at all.

Decisions are computed before any step runs and are returned as data, never
raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .config import RuntimeConfig

if TYPE_CHECKING:
    from .definitions import AgentDefinition, ClientDefinition


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str | None = None


_ALLOWED = PolicyDecision(True)


class ExecutionPolicy:
    def __init__(self, config: RuntimeConfig) -> None:
        self.config = config

    def is_raw_script_allowed(self) -> bool:
        return bool(self.config.allow_raw_script)

    def can_execute(self, agent: AgentDefinition) -> PolicyDecision:
        if self.config.strict_safe_mode and agent.mode != "safe":
            return PolicyDecision(False, f"Strict safe mode only allows safe agents (agent '{agent.id}' is {agent.mode})")
        if agent.mode == "safe" and agent.contains_raw_script:
            return PolicyDecision(
                False, f"Agent '{agent.id}' is misconfigured: safe-mode agents cannot contain executeScript steps"
            )
        if agent.mode == "model-assisted" and not self.config.model_assisted_enabled:
            return PolicyDecision(False, "Model-assisted agents are disabled in settings")
        if agent.contains_raw_script and not self.is_raw_script_allowed():
            return PolicyDecision(
                False, "JavaScript execution is disabled in settings. Enable it in Settings to run this agent."
            )
        return _ALLOWED

    def can_execute_client(self, client: ClientDefinition) -> PolicyDecision:
        if client.contains_script and not self.is_raw_script_allowed():
            return PolicyDecision(
                False, "JavaScript execution is disabled in settings. Enable it in Settings to run this client."
            )
        return _ALLOWED
